# leadmagnet/services/airtable.py
"""
Airtable record-store client for the leads table.

Every write is a single remote call. Non-success responses raise
``AirtableRequestError`` and are never retried; callers must not assume
partial success.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote

import aiohttp
from fastapi import Request

from leadmagnet.core.config import Settings, settings as default_settings
from leadmagnet.core.constants import AIRTABLE_FIELDS
from leadmagnet.core.exceptions import AirtableConfigError, AirtableError, AirtableRequestError
from leadmagnet.core.logging import get_structlog_logger
from leadmagnet.services.normalization import (
    normalize_boolean,
    normalize_download_count,
    normalize_email,
    normalize_first_name,
    normalize_iso_timestamp,
    normalize_record_id,
    normalize_text,
    normalize_token,
    utc_now_iso,
)

logger = get_structlog_logger(__name__)

_BASE_ID_PATTERN = re.compile(r"^app[0-9A-Za-z]+$")
_REQUIRED_ENV = ("AIRTABLE_API_TOKEN", "AIRTABLE_BASE_ID", "AIRTABLE_LEADS_TABLE")

_has_warned_token_prefix = False


@dataclass(frozen=True)
class AirtableConfig:
    api_token: str
    base_id: str
    table_name: str
    api_base: str = "https://api.airtable.com/v0"
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "AirtableConfig":
        global _has_warned_token_prefix

        api_token = settings.airtable_api_token
        base_id = settings.airtable_base_id
        table_name = settings.airtable_leads_table

        values = dict(zip(_REQUIRED_ENV, (api_token, base_id, table_name)))
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise AirtableConfigError(
                "Airtable config is incomplete. Required: "
                f"{', '.join(_REQUIRED_ENV)}. Missing: {', '.join(missing)}",
                missing=missing,
            )

        if "/" in base_id:
            raise AirtableConfigError(
                "Airtable config is incomplete. AIRTABLE_BASE_ID must contain only the base id (app...), no path segments."
            )

        if not _BASE_ID_PATTERN.match(base_id):
            raise AirtableConfigError(
                "Airtable config is incomplete. AIRTABLE_BASE_ID must match ^app[0-9A-Za-z]+$."
            )

        if "/" in table_name:
            raise AirtableConfigError(
                "Airtable config is incomplete. AIRTABLE_LEADS_TABLE must be a table name, not a path or id pair."
            )

        if not api_token.startswith("pat") and not _has_warned_token_prefix:
            _has_warned_token_prefix = True
            logger.warning(
                "airtable.token_prefix_unexpected",
                message='AIRTABLE_API_TOKEN does not start with "pat". Verify token format and permissions.',
            )

        return cls(
            api_token=api_token,
            base_id=base_id,
            table_name=table_name,
            api_base=settings.airtable_api_base.rstrip("/"),
            timeout_seconds=settings.airtable_timeout_seconds,
        )

    @property
    def table_url(self) -> str:
        return f"{self.api_base}/{self.base_id}/{quote(self.table_name, safe='')}"


@dataclass(frozen=True)
class AirtableRecord:
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    created_time: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["AirtableRecord"]:
        if not isinstance(payload, dict) or not isinstance(payload.get("id"), str):
            return None
        fields = payload.get("fields")
        created_time = payload.get("createdTime")
        return cls(
            id=payload["id"],
            fields=fields if isinstance(fields, dict) else {},
            created_time=created_time if isinstance(created_time, str) else None,
        )


@dataclass(frozen=True)
class TokenLookupResult:
    record_id: Optional[str]
    token_matched: bool
    first_name: str = ""
    download_count: int = 0
    created_time: Optional[str] = None

    @classmethod
    def from_record(cls, record: Optional[AirtableRecord]) -> "TokenLookupResult":
        if record is None:
            return cls(record_id=None, token_matched=False)

        return cls(
            record_id=record.id,
            token_matched=True,
            first_name=normalize_text(record.fields.get(AIRTABLE_FIELDS["first_name"]), 120) or "",
            download_count=normalize_download_count(record.fields.get(AIRTABLE_FIELDS["download_count"])),
            created_time=record.created_time,
        )


class RecordStore(Protocol):
    """Operations the lead-magnet endpoints need from the record store."""

    async def find_by_token(self, token: str) -> TokenLookupResult: ...

    async def find_by_record_id(self, record_id: str) -> Optional[AirtableRecord]: ...

    async def create_lead(self, fields: Dict[str, Any]) -> TokenLookupResult: ...

    async def update_lead(self, record_id: str, fields: Dict[str, Any]) -> TokenLookupResult: ...

    async def increment_download(
        self, record_id: str, extra_fields: Optional[Dict[str, Any]] = None
    ) -> TokenLookupResult: ...


def pick_defined_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drop absent values so a write never clobbers existing store data."""
    return {key: value for key, value in fields.items() if value is not None}


def escape_formula_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'").replace("\r", " ").replace("\n", " ")


def _first_record(payload: Any) -> Optional[AirtableRecord]:
    records = payload.get("records") if isinstance(payload, dict) else None
    if not isinstance(records, list) or not records:
        return None
    return AirtableRecord.from_payload(records[0])


class AirtableClient:
    """
    Async client for one Airtable leads table.

    Configuration is resolved on first request so the application can boot
    without Airtable credentials; a missing variable surfaces as
    ``AirtableConfigError`` at call time.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        config: Optional[AirtableConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._settings = settings or default_settings
        self._config = config
        self._session = session

    @property
    def config(self) -> AirtableConfig:
        if self._config is None:
            self._config = AirtableConfig.from_settings(self._settings)
        return self._config

    async def _request(
        self,
        method: str,
        path: str = "",
        *,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        config = self.config
        url = f"{config.table_url}{path}"
        headers = {
            "Authorization": f"Bearer {config.api_token}",
            "Content-Type": "application/json",
        }

        try:
            if self._session is not None:
                return await self._send(self._session, method, url, headers, params, payload)

            timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                return await self._send(session, method, url, headers, params, payload)
        except asyncio.TimeoutError:
            logger.error("airtable.request_timeout", method=method, path=path or "/")
            raise AirtableRequestError(0, "Request timeout")
        except aiohttp.ClientError as e:
            logger.error("airtable.client_error", method=method, path=path or "/", error=str(e)[:200])
            raise AirtableRequestError(0, f"Client error: {str(e)[:200]}")

    async def _send(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, str]],
        payload: Optional[Dict[str, Any]],
    ) -> Any:
        async with session.request(method, url, headers=headers, params=params, json=payload) as response:
            if not 200 <= response.status < 300:
                body = await response.text()
                logger.error(
                    "airtable.request_failed",
                    method=method,
                    status=response.status,
                    body=body[:400],
                )
                raise AirtableRequestError(response.status, body)
            return await response.json(content_type=None)

    async def find_by_token(self, token: str) -> TokenLookupResult:
        normalized = normalize_token(token)
        if not normalized:
            return TokenLookupResult.from_record(None)

        formula = f"{{{AIRTABLE_FIELDS['token']}}}='{escape_formula_string(normalized)}'"
        payload = await self._request(
            "GET",
            params={"maxRecords": "1", "filterByFormula": formula},
        )
        return TokenLookupResult.from_record(_first_record(payload))

    async def find_by_record_id(self, record_id: str) -> Optional[AirtableRecord]:
        normalized = normalize_record_id(record_id)
        if not normalized:
            return None

        try:
            payload = await self._request("GET", f"/{normalized}")
        except AirtableError as e:
            logger.warning("airtable.record_lookup_failed", record_id=normalized, error=e.message)
            return None
        return AirtableRecord.from_payload(payload)

    async def create_lead(self, fields: Dict[str, Any]) -> TokenLookupResult:
        payload = await self._request(
            "POST",
            payload={"records": [{"fields": pick_defined_fields(fields)}]},
        )
        return TokenLookupResult.from_record(_first_record(payload))

    async def update_lead(self, record_id: str, fields: Dict[str, Any]) -> TokenLookupResult:
        normalized = normalize_record_id(record_id)
        if not normalized:
            raise AirtableError("Invalid Airtable record id for update")

        payload = await self._request(
            "PATCH",
            payload={"records": [{"id": normalized, "fields": pick_defined_fields(fields)}]},
        )
        return TokenLookupResult.from_record(_first_record(payload))

    async def increment_download(
        self, record_id: str, extra_fields: Optional[Dict[str, Any]] = None
    ) -> TokenLookupResult:
        record = await self.find_by_record_id(record_id)
        if record is None:
            raise AirtableError("Record not found for download increment")

        current = normalize_download_count(record.fields.get(AIRTABLE_FIELDS["download_count"]))
        now = utc_now_iso()

        return await self.update_lead(
            record.id,
            {
                AIRTABLE_FIELDS["download_count"]: current + 1,
                AIRTABLE_FIELDS["ts_downloaded"]: now,
                AIRTABLE_FIELDS["last_seen_at"]: now,
                **(extra_fields or {}),
            },
        )


def build_lead_fields(
    *,
    email: Any = None,
    token: Any = None,
    first_name: Any = None,
    consent_marketing: Any = None,
    lead_source: Any = None,
    asset_id: Any = None,
    utm_source: Any = None,
    utm_medium: Any = None,
    utm_campaign: Any = None,
    utm_content: Any = None,
    ts_submitted: Any = None,
    ts_downloaded: Any = None,
    flow_type: Any = None,
    state_requested: Any = None,
    token_match_status: Any = None,
    page_path: Any = None,
    last_seen_at: Any = None,
    download_count: Any = None,
) -> Dict[str, Any]:
    """Normalize raw lead input into Airtable columns, omitting absent values."""
    count = None
    if isinstance(download_count, (int, float)) and not isinstance(download_count, bool):
        count = normalize_download_count(download_count)

    # str-valued enums are written as their plain value
    if hasattr(lead_source, "value"):
        lead_source = lead_source.value
    if hasattr(token_match_status, "value"):
        token_match_status = token_match_status.value
    if hasattr(flow_type, "value"):
        flow_type = flow_type.value

    return pick_defined_fields({
        AIRTABLE_FIELDS["email"]: normalize_email(email),
        AIRTABLE_FIELDS["token"]: normalize_token(token),
        AIRTABLE_FIELDS["first_name"]: normalize_first_name(first_name),
        AIRTABLE_FIELDS["consent_marketing"]: normalize_boolean(consent_marketing),
        AIRTABLE_FIELDS["lead_source"]: normalize_text(lead_source, 80),
        AIRTABLE_FIELDS["asset_id"]: normalize_text(asset_id, 120),
        AIRTABLE_FIELDS["utm_source"]: normalize_text(utm_source, 120),
        AIRTABLE_FIELDS["utm_medium"]: normalize_text(utm_medium, 120),
        AIRTABLE_FIELDS["utm_campaign"]: normalize_text(utm_campaign, 180),
        AIRTABLE_FIELDS["utm_content"]: normalize_text(utm_content, 180),
        AIRTABLE_FIELDS["ts_submitted"]: normalize_iso_timestamp(ts_submitted),
        AIRTABLE_FIELDS["ts_downloaded"]: normalize_iso_timestamp(ts_downloaded),
        AIRTABLE_FIELDS["flow_type"]: normalize_text(flow_type, 40),
        AIRTABLE_FIELDS["state_requested"]: normalize_text(state_requested, 40),
        AIRTABLE_FIELDS["token_match_status"]: normalize_text(token_match_status, 40),
        AIRTABLE_FIELDS["page_path"]: normalize_text(page_path, 255),
        AIRTABLE_FIELDS["last_seen_at"]: normalize_iso_timestamp(last_seen_at) or utc_now_iso(),
        AIRTABLE_FIELDS["download_count"]: count,
    })


def get_record_store(request: Request) -> RecordStore:
    """FastAPI dependency: an Airtable client bound to the app-wide HTTP session."""
    return AirtableClient(session=getattr(request.app.state, "http_session", None))


def reset_token_prefix_warning() -> None:
    global _has_warned_token_prefix
    _has_warned_token_prefix = False


__all__ = [
    "AirtableClient",
    "AirtableConfig",
    "AirtableRecord",
    "RecordStore",
    "TokenLookupResult",
    "build_lead_fields",
    "escape_formula_string",
    "get_record_store",
    "pick_defined_fields",
]
