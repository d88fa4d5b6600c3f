# leadmagnet/schemas/__init__.py
"""
Pydantic schemas for request/response validation and serialization.
"""

from leadmagnet.schemas.lead_magnet import (
    CaptureRequest,
    CaptureResponse,
    DownloadRequest,
    DownloadResponse,
    ErrorResponse,
    ResolveKnownResponse,
)

__all__ = [
    "CaptureRequest",
    "CaptureResponse",
    "DownloadRequest",
    "DownloadResponse",
    "ErrorResponse",
    "ResolveKnownResponse",
]
