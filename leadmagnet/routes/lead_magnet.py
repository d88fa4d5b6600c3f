# leadmagnet/routes/lead_magnet.py
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from leadmagnet.core.exceptions import InvalidInputError
from leadmagnet.core.logging import get_structlog_logger
from leadmagnet.schemas.lead_magnet import (
    CaptureRequest,
    CaptureResponse,
    DownloadRequest,
    DownloadResponse,
    ErrorResponse,
    ResolveKnownResponse,
)
from leadmagnet.services.airtable import RecordStore, get_record_store
from leadmagnet.services.capture import capture_lead
from leadmagnet.services.download import track_download
from leadmagnet.services.normalization import normalize_first_name, normalize_token
from leadmagnet.services.resolve_known import resolve_known_lead

router = APIRouter(prefix="/lead-magnet")


class LeadMagnetJSONResponse(JSONResponse):
    media_type = "application/json; charset=utf-8"

    def __init__(self, content: Any, status_code: int = 200, **kwargs) -> None:
        headers = {"Cache-Control": "no-store", **(kwargs.pop("headers", None) or {})}
        super().__init__(content, status_code=status_code, headers=headers, **kwargs)


async def _parse_body(request: Request) -> Dict[str, Any]:
    """Request body as a dict; malformed or non-object JSON becomes an empty body."""
    try:
        parsed = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


@router.post("/capture", summary="Capture a lead-magnet form submission")
async def capture(
    request: Request,
    store: RecordStore = Depends(get_record_store),
) -> JSONResponse:
    logger = get_structlog_logger().bind(route="/api/lead-magnet/capture", action="capture")
    body = CaptureRequest.model_validate(await _parse_body(request))

    try:
        result = await capture_lead(store=store, body=body)
    except InvalidInputError as e:
        logger.info("capture.rejected", code=e.code)
        return LeadMagnetJSONResponse(
            ErrorResponse(ok=False, error=e.message).to_body(),
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    except Exception as e:
        logger.error("capture.failed", error_type=type(e).__name__, error=str(e)[:400])
        return LeadMagnetJSONResponse(
            ErrorResponse(ok=False, error="Unable to capture lead").to_body(),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return LeadMagnetJSONResponse(
        CaptureResponse(
            ok=True,
            lead_record_id=result.lead_record_id,
            token_matched=result.token_matched,
            state=result.state,
        ).to_body()
    )


@router.post("/download", summary="Track a lead-magnet download")
async def download(
    request: Request,
    store: RecordStore = Depends(get_record_store),
) -> JSONResponse:
    logger = get_structlog_logger().bind(route="/api/lead-magnet/download", action="download")
    body = DownloadRequest.model_validate(await _parse_body(request))

    try:
        result = await track_download(store=store, body=body)
    except Exception as e:
        logger.error("download.failed", error_type=type(e).__name__, error=str(e)[:400])
        return LeadMagnetJSONResponse(
            ErrorResponse(ok=False, error="Unable to track download").to_body(),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return LeadMagnetJSONResponse(
        DownloadResponse(
            ok=True,
            status=result.status.value,
            lead_record_id=result.lead_record_id,
            token_matched=result.token_matched,
        ).to_body()
    )


@router.get("/resolve-known", summary="Resolve a known lead from an outreach token")
async def resolve_known(
    token: Optional[str] = Query(default=None),
    firstname: Optional[str] = Query(default=None),
    store: RecordStore = Depends(get_record_store),
) -> JSONResponse:
    logger = get_structlog_logger().bind(route="/api/lead-magnet/resolve-known", action="resolve_known")
    fallback_name = normalize_first_name(firstname) or ""

    try:
        resolution = await resolve_known_lead(store=store, token=token, fallback_name=fallback_name)
    except InvalidInputError as e:
        logger.info("resolve_known.rejected", code=e.code)
        return LeadMagnetJSONResponse(
            ResolveKnownResponse(
                ok=False,
                error=e.message,
                known=False,
                token_matched=False,
                name=fallback_name,
                lead_record_id=None,
            ).to_body(),
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    except Exception as e:
        logger.error("resolve_known.failed", error_type=type(e).__name__, error=str(e)[:400])
        return LeadMagnetJSONResponse(
            ResolveKnownResponse(
                ok=False,
                error="Unable to resolve known lead",
                known=True,
                token_matched=False,
                name=fallback_name,
                lead_record_id=None,
                token=normalize_token(token),
            ).to_body(),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.info("resolve_known.resolved", token_matched=resolution.token_matched)
    return LeadMagnetJSONResponse(
        ResolveKnownResponse(
            ok=True,
            known=True,
            token_matched=resolution.token_matched,
            name=resolution.name,
            lead_record_id=resolution.lead_record_id,
            token=resolution.token,
        ).to_body()
    )
