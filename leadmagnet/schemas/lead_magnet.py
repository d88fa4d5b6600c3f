# leadmagnet/schemas/lead_magnet.py
"""
Request and response shapes for the lead-magnet endpoints.

Request fields are typed ``Any`` on purpose: bodies come straight from the
browser and every value goes through the normalizers, so a wrong type turns
into an absent field instead of a 422.
"""
from __future__ import annotations

from typing import Any, ClassVar, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class _LenientBody(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    token: Any = None
    name: Any = None
    lead_source: Any = None
    asset_id: Any = None
    utm_source: Any = None
    utm_medium: Any = None
    utm_campaign: Any = None
    utm_content: Any = None
    flow_type: Any = None
    state_requested: Any = None
    page_path: Any = None


class CaptureRequest(_LenientBody):
    email: Any = None
    consent_marketing: Any = None
    ts_submitted: Any = None


class DownloadRequest(_LenientBody):
    lead_record_id: Any = Field(default=None, alias="leadRecordId")
    token_matched: Any = None


class _Response(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # optional keys left out of the body entirely when absent
    omit_when_none: ClassVar[Tuple[str, ...]] = ("error", "token")

    def to_body(self) -> dict:
        body = self.model_dump(by_alias=True, mode="json")
        for key in self.omit_when_none:
            if body.get(key) is None:
                body.pop(key, None)
        return body


class ErrorResponse(_Response):
    ok: bool = False
    error: str


class CaptureResponse(_Response):
    ok: bool
    lead_record_id: Optional[str] = Field(alias="leadRecordId")
    token_matched: bool = Field(alias="tokenMatched")
    state: str


class DownloadResponse(_Response):
    ok: bool
    status: str
    lead_record_id: Optional[str] = Field(alias="leadRecordId")
    token_matched: bool = Field(alias="tokenMatched")


class ResolveKnownResponse(_Response):
    ok: bool
    error: Optional[str] = None
    known: bool
    token_matched: bool = Field(alias="tokenMatched")
    name: str
    lead_record_id: Optional[str] = Field(alias="leadRecordId")
    token: Optional[str] = None
