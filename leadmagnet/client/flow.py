# leadmagnet/client/flow.py
"""
Lead-magnet page flow controller.

The page has three states: ``gated`` (default), ``submitted`` and ``known``.
State is derived only from the URL query and the session payload stored by a
previous submission. A successful form capture commits the new state by
redirecting to a URL that carries it, so every state is bookmarkable and
survives reloads.
"""
from __future__ import annotations

import asyncio
import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Set, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

from leadmagnet.client.api import LeadMagnetApi
from leadmagnet.core.config import settings
from leadmagnet.core.constants import (
    LEAD_MAGNET_EVENTS,
    SESSION_PAYLOAD_KEY,
    UTM_PARAMS,
    FlowType,
    LeadMagnetState,
    TokenMatchStatus,
)
from leadmagnet.core.logging import get_structlog_logger
from leadmagnet.services.classification import derive_lead_source
from leadmagnet.services.normalization import normalize_first_name, normalize_token, utc_now_iso

logger = get_structlog_logger(__name__)

# WHATWG "valid e-mail address", the rule behind <input type="email">
_NATIVE_EMAIL = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

SUBMIT_ERROR_MESSAGE = "We could not send your request. Please try again."


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class EventSink(Protocol):
    def emit(self, name: str, attributes: Dict[str, Any]) -> None: ...


class MemoryStorage:
    """Session-scoped key-value store."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class RecordingEventSink:
    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, name: str, attributes: Dict[str, Any]) -> None:
        self.events.append((name, dict(attributes)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


@dataclass
class PageContext:
    path: str
    query: Dict[str, str] = field(default_factory=dict)
    origin: str = ""
    asset_id: str = field(default_factory=lambda: settings.lead_magnet_asset_id)
    events: Dict[str, str] = field(default_factory=lambda: dict(LEAD_MAGNET_EVENTS))
    require_email_gate: bool = False

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "PageContext":
        parts = urlsplit(url)
        query: Dict[str, str] = {}
        # first occurrence wins, like URLSearchParams.get
        for key, value in parse_qsl(parts.query, keep_blank_values=True):
            query.setdefault(key, value)
        origin = f"{parts.scheme}://{parts.netloc}" if parts.scheme and parts.netloc else ""
        return cls(path=parts.path or "/", query=query, origin=origin, **kwargs)

    def param(self, name: str) -> str:
        return (self.query.get(name) or "").strip()

    def utm_values(self) -> Dict[str, str]:
        return {key: self.query[key] for key in UTM_PARAMS if self.query.get(key)}


@dataclass
class SessionPayload:
    email: str
    consent_marketing: bool = False
    lead_source: Optional[str] = None
    asset_id: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_content: Optional[str] = None
    ts_submitted: Optional[str] = None
    token: Optional[str] = None
    name: Optional[str] = None
    token_matched: Optional[bool] = None
    lead_record_id: Optional[str] = None
    captured_at: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({key: value for key, value in asdict(self).items() if value is not None})

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional["SessionPayload"]:
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(data, dict) or not isinstance(data.get("email"), str):
            return None
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)


@dataclass
class FlowView:
    state: LeadMagnetState
    show_invalid_known_link: bool = False
    name: str = ""
    token_match_status: TokenMatchStatus = TokenMatchStatus.NOT_APPLICABLE
    lead_record_id: Optional[str] = None
    last_email: Optional[str] = None

    @property
    def visible_block(self) -> str:
        return self.state.value

    def is_visible(self, block: str) -> bool:
        return block == self.state.value

    @property
    def greeting(self) -> Optional[str]:
        if self.state is LeadMagnetState.KNOWN and self.name:
            return f"Welcome back, {self.name}"
        return None


@dataclass
class SubmitOutcome:
    ok: bool
    redirect_url: Optional[str] = None
    error: Optional[str] = None
    error_role: Optional[str] = None
    field_invalid: bool = False
    submit_enabled: bool = True


class LeadMagnetFlow:
    """
    Drives one page load.

    ``load`` renders optimistically and, in the known state, starts the
    known-lead lookup in the background; ``wait_until_settled`` awaits the
    lookup and any in-flight download beacons.
    """

    def __init__(
        self,
        page: PageContext,
        storage: KeyValueStore,
        events: EventSink,
        api: LeadMagnetApi,
    ) -> None:
        self.page = page
        self.storage = storage
        self.events = events
        self.api = api

        self.requested_state = self.page.param("state")
        self.token = normalize_token(self.page.param("token"))
        self.stored = self._read_stored_payload()
        self.state = self.compute_state()
        self.view = self._initial_view()

        self._submitting = False
        self._lookup: Optional[asyncio.Task] = None
        self._beacons: Set[asyncio.Task] = set()

    def _read_stored_payload(self) -> Optional[SessionPayload]:
        try:
            return SessionPayload.from_json(self.storage.get(SESSION_PAYLOAD_KEY))
        except Exception as e:
            logger.warning("flow.storage_read_failed", error=str(e))
            return None

    def _write_stored_payload(self, payload: SessionPayload) -> None:
        try:
            self.storage.set(SESSION_PAYLOAD_KEY, payload.to_json())
        except Exception as e:
            logger.warning("flow.storage_write_failed", error=str(e))

    @property
    def has_stored_email(self) -> bool:
        return bool(self.stored and self.stored.email.strip())

    def compute_state(self) -> LeadMagnetState:
        gate = self.page.require_email_gate
        state = LeadMagnetState.GATED

        if self.requested_state == LeadMagnetState.SUBMITTED.value and (not gate or self.has_stored_email):
            state = LeadMagnetState.SUBMITTED

        if self.requested_state == LeadMagnetState.KNOWN.value and self.token and not gate:
            state = LeadMagnetState.KNOWN

        return state

    def _stored_for_token(self) -> Optional[SessionPayload]:
        if self.stored and self.token and self.stored.token == self.token:
            return self.stored
        return None

    def _initial_view(self) -> FlowView:
        view = FlowView(
            state=self.state,
            show_invalid_known_link=(
                self.requested_state == LeadMagnetState.KNOWN.value and self.state is not LeadMagnetState.KNOWN
            ),
            last_email=self.stored.email if self.stored else None,
        )

        if self.state is LeadMagnetState.KNOWN:
            cached = self._stored_for_token()
            view.name = (cached.name if cached and cached.name else None) or normalize_first_name(
                self.page.param("firstname")
            ) or ""
            view.token_match_status = (
                TokenMatchStatus.MATCHED if cached and cached.token_matched else TokenMatchStatus.UNKNOWN
            )
            view.lead_record_id = cached.lead_record_id if cached else None
        elif self.stored:
            view.lead_record_id = self.stored.lead_record_id

        return view

    def _emit(self, key: str, **attributes: Any) -> None:
        self.events.emit(self.page.events.get(key, LEAD_MAGNET_EVENTS[key]), attributes)

    async def load(self) -> FlowView:
        """Render the optimistic view and emit the view event for this state."""
        self._emit("view", state=self.state.value, asset_id=self.page.asset_id)

        if self.state is LeadMagnetState.KNOWN:
            cached = self._stored_for_token()
            if cached and cached.token_matched and cached.lead_record_id:
                self._emit("known_unlock_view", token=self.token, token_match_status=TokenMatchStatus.MATCHED.value)
            else:
                self._lookup = asyncio.create_task(self._resolve_known())

        return self.view

    async def _resolve_known(self) -> None:
        try:
            body = await self.api.resolve_known(self.token, self.page.param("firstname") or None)
        except Exception as e:
            logger.warning("flow.resolve_known_failed", error=str(e))
            body = None

        if body and body.get("ok"):
            matched = bool(body.get("tokenMatched"))
            self.view.token_match_status = TokenMatchStatus.MATCHED if matched else TokenMatchStatus.UNMATCHED
            self.view.name = body.get("name") or self.view.name
            self.view.lead_record_id = body.get("leadRecordId")
        else:
            self.view.token_match_status = TokenMatchStatus.UNKNOWN

        self._emit("known_unlock_view", token=self.token, token_match_status=self.view.token_match_status.value)

    async def wait_until_settled(self) -> FlowView:
        pending = [task for task in (self._lookup, *self._beacons) if task is not None]
        if pending:
            await asyncio.gather(*pending)
        return self.view

    def _redirect_url(self) -> str:
        params: Dict[str, str] = {}
        if self.state is LeadMagnetState.KNOWN:
            params["state"] = LeadMagnetState.KNOWN.value
            params["token"] = self.token
            firstname = self.page.param("firstname")
            if firstname:
                params["firstname"] = firstname
        else:
            params["state"] = LeadMagnetState.SUBMITTED.value
        params.update(self.page.utm_values())
        return f"{self.page.origin}{self.page.path}?{urlencode(params)}"

    async def submit(self, email: str, consent_marketing: bool = False, name: Optional[str] = None) -> SubmitOutcome:
        """Handle a form submission; on success the caller navigates to ``redirect_url``."""
        if self._submitting:
            return SubmitOutcome(ok=False, submit_enabled=False)

        email = (email or "").strip()
        if not email or not _NATIVE_EMAIL.match(email):
            return SubmitOutcome(ok=False, field_invalid=True)

        self._submitting = True
        try:
            utm_values = self.page.utm_values()
            token = self.token if self.state is LeadMagnetState.KNOWN else None
            first_name = normalize_first_name(name) or (self.view.name if token else None)
            payload = {
                "email": email,
                "consent_marketing": bool(consent_marketing),
                "lead_source": derive_lead_source(
                    token=token,
                    utm_source=utm_values.get("utm_source"),
                    utm_medium=utm_values.get("utm_medium"),
                ).value,
                "asset_id": self.page.asset_id,
                **utm_values,
                "ts_submitted": utc_now_iso(),
                "flow_type": (FlowType.KNOWN if token else FlowType.GATED).value,
                "state_requested": self.requested_state or None,
                "page_path": self.page.path,
            }
            if token:
                payload["token"] = token
            if first_name:
                payload["name"] = first_name

            self._emit("form_submit", asset_id=self.page.asset_id, consent_marketing=bool(consent_marketing))

            try:
                body = await self.api.capture({key: value for key, value in payload.items() if value is not None})
            except Exception as e:
                logger.warning("flow.capture_failed", error=str(e))
                body = None

            if not body or not body.get("ok"):
                return SubmitOutcome(ok=False, error=SUBMIT_ERROR_MESSAGE, error_role="alert")

            stored = SessionPayload(
                email=email,
                consent_marketing=bool(consent_marketing),
                lead_source=payload["lead_source"],
                asset_id=self.page.asset_id,
                ts_submitted=payload["ts_submitted"],
                token=token,
                name=first_name,
                token_matched=bool(body.get("tokenMatched")),
                lead_record_id=body.get("leadRecordId"),
                captured_at=utc_now_iso(),
                **utm_values,
            )
            self._write_stored_payload(stored)
            self.stored = stored

            return SubmitOutcome(ok=True, redirect_url=self._redirect_url(), submit_enabled=False)
        finally:
            self._submitting = False

    def click_download(self) -> None:
        """Emit the click event and send the tracking beacon without waiting for it."""
        self._emit("download_click", state=self.state.value, asset_id=self.page.asset_id)

        record_id = self.view.lead_record_id or (self.stored.lead_record_id if self.stored else None)
        payload: Dict[str, Any] = {
            "leadRecordId": record_id,
            "token": self.token,
            "name": self.view.name or (self.stored.name if self.stored else None),
            "asset_id": self.page.asset_id,
            "flow_type": (FlowType.KNOWN if self.token else FlowType.GATED).value,
            "state_requested": self.requested_state or None,
            "page_path": self.page.path,
            **self.page.utm_values(),
        }
        if self.view.token_match_status in (TokenMatchStatus.MATCHED, TokenMatchStatus.UNMATCHED):
            payload["token_matched"] = self.view.token_match_status is TokenMatchStatus.MATCHED
        elif self.stored and self.stored.token_matched is not None:
            payload["token_matched"] = self.stored.token_matched

        task = asyncio.get_running_loop().create_task(
            self._send_beacon({key: value for key, value in payload.items() if value is not None})
        )
        self._beacons.add(task)
        task.add_done_callback(self._beacons.discard)

    async def _send_beacon(self, payload: Dict[str, Any]) -> None:
        try:
            await self.api.track_download(payload)
        except Exception as e:
            logger.info("flow.download_beacon_failed", error=str(e))

    def click_secondary_cta(self) -> None:
        self._emit("secondary_cta_click", state=self.state.value)
