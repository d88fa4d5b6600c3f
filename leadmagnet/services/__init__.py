# leadmagnet/services/__init__.py
"""
Business logic services for the lead-magnet flow.
"""

from leadmagnet.services.airtable import (
    AirtableClient,
    RecordStore,
    TokenLookupResult,
    build_lead_fields,
    get_record_store,
)
from leadmagnet.services.capture import CaptureResult, capture_lead
from leadmagnet.services.classification import derive_lead_source, resolve_lead_source
from leadmagnet.services.download import DownloadResult, track_download
from leadmagnet.services.resolve_known import KnownLeadResolution, resolve_known_lead

__all__ = [
    # Record store
    "AirtableClient",
    "RecordStore",
    "TokenLookupResult",
    "build_lead_fields",
    "get_record_store",
    # Classification
    "derive_lead_source",
    "resolve_lead_source",
    # Endpoints
    "CaptureResult",
    "capture_lead",
    "DownloadResult",
    "track_download",
    "KnownLeadResolution",
    "resolve_known_lead",
]
