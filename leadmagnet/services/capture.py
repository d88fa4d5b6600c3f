# leadmagnet/services/capture.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from leadmagnet.core.constants import FlowType, LeadMagnetState, TokenMatchStatus
from leadmagnet.core.exceptions import InvalidInputError
from leadmagnet.core.logging import get_structlog_logger
from leadmagnet.schemas.lead_magnet import CaptureRequest
from leadmagnet.services.airtable import RecordStore, build_lead_fields
from leadmagnet.services.classification import resolve_lead_source
from leadmagnet.services.normalization import (
    derive_name_from_email,
    normalize_email,
    normalize_first_name,
    normalize_token,
    utc_now_iso,
)

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class CaptureResult:
    lead_record_id: Optional[str]
    token_matched: bool
    state: str = LeadMagnetState.SUBMITTED.value


async def capture_lead(*, store: RecordStore, body: CaptureRequest) -> CaptureResult:
    """
    Create or update the lead record for a form submission.

    Without a token a new record is always created. With a token the record
    owning that token is updated; an unknown token still produces a new
    record that carries it, marked ``unmatched``.
    """
    email = normalize_email(body.email)
    if not email:
        raise InvalidInputError("Invalid email", code="invalid_email")

    token = normalize_token(body.token)
    first_name = normalize_first_name(body.name)
    lead_source = resolve_lead_source(
        body.lead_source,
        token=token,
        utm_source=body.utm_source,
        utm_medium=body.utm_medium,
    )
    flow_type = body.flow_type or (FlowType.KNOWN if token else FlowType.GATED)
    now = utc_now_iso()

    shared = dict(
        email=email,
        consent_marketing=body.consent_marketing,
        lead_source=lead_source,
        asset_id=body.asset_id,
        utm_source=body.utm_source,
        utm_medium=body.utm_medium,
        utm_campaign=body.utm_campaign,
        utm_content=body.utm_content,
        ts_submitted=body.ts_submitted or now,
        flow_type=flow_type,
        state_requested=body.state_requested,
        page_path=body.page_path,
        last_seen_at=now,
    )

    if token:
        match = await store.find_by_token(token)
        fields = build_lead_fields(
            token=token,
            first_name=first_name,
            token_match_status=TokenMatchStatus.MATCHED if match.token_matched else TokenMatchStatus.UNMATCHED,
            **shared,
        )

        if match.record_id and match.token_matched:
            updated = await store.update_lead(match.record_id, fields)
            logger.info("capture.updated", lead_record_id=updated.record_id, lead_source=lead_source.value)
            return CaptureResult(lead_record_id=updated.record_id, token_matched=True)

        created = await store.create_lead(fields)
        logger.info("capture.created_unmatched_token", lead_record_id=created.record_id)
        return CaptureResult(lead_record_id=created.record_id, token_matched=False)

    created = await store.create_lead(
        build_lead_fields(
            first_name=first_name or derive_name_from_email(email),
            token_match_status=TokenMatchStatus.NOT_APPLICABLE,
            **shared,
        )
    )
    logger.info("capture.created", lead_record_id=created.record_id, lead_source=lead_source.value)
    return CaptureResult(lead_record_id=created.record_id, token_matched=False)
