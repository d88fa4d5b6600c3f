# leadmagnet/services/resolve_known.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from leadmagnet.core.exceptions import InvalidInputError
from leadmagnet.services.airtable import RecordStore
from leadmagnet.services.normalization import normalize_token


@dataclass(frozen=True)
class KnownLeadResolution:
    token: str
    token_matched: bool
    name: str
    lead_record_id: Optional[str]


async def resolve_known_lead(
    *, store: RecordStore, token: Optional[str], fallback_name: str = ""
) -> KnownLeadResolution:
    """Look up the lead behind an outreach token; the store's name wins over the fallback."""
    normalized = normalize_token(token)
    if not normalized:
        raise InvalidInputError("Missing or invalid token", code="invalid_token")

    match = await store.find_by_token(normalized)
    return KnownLeadResolution(
        token=normalized,
        token_matched=match.token_matched,
        name=match.first_name or fallback_name,
        lead_record_id=match.record_id,
    )
