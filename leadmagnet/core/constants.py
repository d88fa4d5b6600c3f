# leadmagnet/core/constants.py
from __future__ import annotations

from enum import Enum


class LeadSource(str, Enum):
    OUTREACH = "outreach"
    AD = "ad"
    SOCIAL = "social"
    ORGANIC = "organic"


class TokenMatchStatus(str, Enum):
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    NOT_APPLICABLE = "not_applicable"
    UNKNOWN = "unknown"


class FlowType(str, Enum):
    KNOWN = "known"
    GATED = "gated"


class LeadMagnetState(str, Enum):
    GATED = "gated"
    SUBMITTED = "submitted"
    KNOWN = "known"


class DownloadStatus(str, Enum):
    UPDATED_BY_RECORD_ID = "updated_by_record_id"
    UPDATED_BY_TOKEN = "updated_by_token"
    CREATED_FROM_UNMATCHED_TOKEN = "created_from_unmatched_token"
    NOOP_NO_IDENTIFIER = "noop_no_identifier"


# Airtable column names for the leads table.
AIRTABLE_FIELDS = {
    "email": "email",
    "token": "token",
    "first_name": "name",
    "consent_marketing": "consent_marketing",
    "lead_source": "lead_source",
    "asset_id": "asset_id",
    "utm_source": "utm_source",
    "utm_medium": "utm_medium",
    "utm_campaign": "utm_campaign",
    "utm_content": "utm_content",
    "ts_submitted": "ts_submitted",
    "ts_downloaded": "ts_downloaded",
    "download_count": "download_count",
    "flow_type": "flow_type",
    "state_requested": "state_requested",
    "token_match_status": "token_match_status",
    "page_path": "page_path",
    "last_seen_at": "last_seen_at",
}

UTM_PARAMS = ("utm_source", "utm_medium", "utm_campaign", "utm_content")

DEFAULT_ASSET_ID = "reporting-example-pdf-v1"

LEAD_MAGNET_EVENTS = {
    "view": "lead_magnet_view",
    "form_submit": "lead_magnet_form_submit",
    "download_click": "lead_magnet_download_click",
    "known_unlock_view": "lead_magnet_known_unlock_view",
    "secondary_cta_click": "lead_magnet_secondary_cta_click",
}

SESSION_PAYLOAD_KEY = "leadMagnetPayload"
