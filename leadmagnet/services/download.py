# leadmagnet/services/download.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from leadmagnet.core.constants import AIRTABLE_FIELDS, DownloadStatus, FlowType, TokenMatchStatus
from leadmagnet.core.logging import get_structlog_logger
from leadmagnet.schemas.lead_magnet import DownloadRequest
from leadmagnet.services.airtable import RecordStore, build_lead_fields
from leadmagnet.services.classification import resolve_lead_source
from leadmagnet.services.normalization import (
    normalize_first_name,
    normalize_record_id,
    normalize_token,
    utc_now_iso,
)

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class DownloadResult:
    status: DownloadStatus
    lead_record_id: Optional[str]
    token_matched: bool


def _status_from_flag(flag) -> Optional[str]:
    if flag is True:
        return TokenMatchStatus.MATCHED.value
    if flag is False:
        return TokenMatchStatus.UNMATCHED.value
    return None


async def track_download(*, store: RecordStore, body: DownloadRequest) -> DownloadResult:
    """
    Record one download of the lead magnet.

    Resolution order: record id, then token, then a no-op. A failure while
    updating by record id falls through to the token path; failures on the
    token path propagate to the caller.
    """
    record_id = normalize_record_id(body.lead_record_id)
    token = normalize_token(body.token)
    now = utc_now_iso()

    shared = build_lead_fields(
        token=token,
        first_name=normalize_first_name(body.name),
        asset_id=body.asset_id,
        lead_source=resolve_lead_source(
            body.lead_source,
            token=token,
            utm_source=body.utm_source,
            utm_medium=body.utm_medium,
        ),
        utm_source=body.utm_source,
        utm_medium=body.utm_medium,
        utm_campaign=body.utm_campaign,
        utm_content=body.utm_content,
        flow_type=body.flow_type or (FlowType.KNOWN if token else FlowType.GATED),
        state_requested=body.state_requested,
        page_path=body.page_path,
        last_seen_at=now,
    )
    match_status_field = AIRTABLE_FIELDS["token_match_status"]

    if record_id:
        try:
            updated = await store.increment_download(
                record_id,
                {**shared, match_status_field: _status_from_flag(body.token_matched)},
            )
            logger.info("download.updated_by_record_id", lead_record_id=updated.record_id)
            return DownloadResult(
                status=DownloadStatus.UPDATED_BY_RECORD_ID,
                lead_record_id=updated.record_id,
                token_matched=updated.token_matched,
            )
        except Exception as e:
            logger.warning("download.record_id_failed", lead_record_id=record_id, error=str(e))

    if token:
        match = await store.find_by_token(token)

        if match.record_id and match.token_matched:
            updated = await store.increment_download(
                match.record_id,
                {**shared, match_status_field: TokenMatchStatus.MATCHED.value},
            )
            logger.info("download.updated_by_token", lead_record_id=updated.record_id)
            return DownloadResult(
                status=DownloadStatus.UPDATED_BY_TOKEN,
                lead_record_id=updated.record_id,
                token_matched=True,
            )

        created = await store.create_lead({
            **shared,
            AIRTABLE_FIELDS["token"]: token,
            AIRTABLE_FIELDS["ts_downloaded"]: now,
            AIRTABLE_FIELDS["download_count"]: 1,
            match_status_field: TokenMatchStatus.UNMATCHED.value,
        })
        logger.info("download.created_from_unmatched_token", lead_record_id=created.record_id)
        return DownloadResult(
            status=DownloadStatus.CREATED_FROM_UNMATCHED_TOKEN,
            lead_record_id=created.record_id,
            token_matched=False,
        )

    logger.info("download.noop_no_identifier")
    return DownloadResult(
        status=DownloadStatus.NOOP_NO_IDENTIFIER,
        lead_record_id=None,
        token_matched=False,
    )
