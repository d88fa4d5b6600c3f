# leadmagnet/client/__init__.py
"""
Page-side lead-magnet flow: state selection, form capture and download tracking.
"""

from leadmagnet.client.api import HttpLeadMagnetApi, LeadMagnetApi, LeadMagnetApiError
from leadmagnet.client.flow import (
    EventSink,
    FlowView,
    KeyValueStore,
    LeadMagnetFlow,
    MemoryStorage,
    PageContext,
    RecordingEventSink,
    SessionPayload,
    SubmitOutcome,
)

__all__ = [
    "EventSink",
    "FlowView",
    "HttpLeadMagnetApi",
    "KeyValueStore",
    "LeadMagnetApi",
    "LeadMagnetApiError",
    "LeadMagnetFlow",
    "MemoryStorage",
    "PageContext",
    "RecordingEventSink",
    "SessionPayload",
    "SubmitOutcome",
]
