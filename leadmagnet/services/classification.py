# leadmagnet/services/classification.py
from __future__ import annotations

from typing import Any, Optional

from leadmagnet.core.constants import LeadSource
from leadmagnet.services.normalization import (
    normalize_lead_source,
    normalize_text,
    normalize_token,
)

AD_MEDIUMS = frozenset({"cpc", "ppc", "paid", "paid_social", "display"})
SOCIAL_MEDIUMS = frozenset({"social", "organic_social"})
SOCIAL_SOURCES = frozenset({"linkedin", "facebook", "instagram", "x", "twitter", "tiktok"})


def _lowered(value: Any) -> str:
    text = normalize_text(value, 120)
    return text.lower() if text else ""


def derive_lead_source(
    token: Any = None,
    utm_source: Any = None,
    utm_medium: Any = None,
) -> LeadSource:
    """
    Classify the acquisition channel of a lead.

    Priority order:
    1. a valid token (outreach link)
    2. paid UTM medium
    3. social UTM medium or a known social network as UTM source
    4. organic
    """
    if normalize_token(token):
        return LeadSource.OUTREACH

    medium = _lowered(utm_medium)
    source = _lowered(utm_source)

    if medium in AD_MEDIUMS:
        return LeadSource.AD

    if medium in SOCIAL_MEDIUMS or source in SOCIAL_SOURCES:
        return LeadSource.SOCIAL

    return LeadSource.ORGANIC


def resolve_lead_source(
    explicit: Any = None,
    *,
    token: Optional[str] = None,
    utm_source: Any = None,
    utm_medium: Any = None,
) -> LeadSource:
    """An explicit, valid lead_source from the caller wins over derivation."""
    return normalize_lead_source(explicit) or derive_lead_source(
        token=token,
        utm_source=utm_source,
        utm_medium=utm_medium,
    )
