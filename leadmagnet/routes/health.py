# leadmagnet/routes/health.py
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Dict, List

import psutil
from fastapi import APIRouter, status
from pydantic import BaseModel

from leadmagnet import __version__
from leadmagnet.core.config import settings
from leadmagnet.core.exceptions import AirtableConfigError
from leadmagnet.core.logging import get_structlog_logger
from leadmagnet.services.airtable import AirtableConfig

logger = get_structlog_logger()

router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    version: str
    timestamp: str
    uptime: float
    checks: Dict[str, Dict[str, str]]
    dependencies: List[str]


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def check_airtable_config() -> Dict[str, str]:
    """Validate the Airtable environment without calling Airtable."""
    try:
        config = AirtableConfig.from_settings(settings)
    except AirtableConfigError as e:
        result = {"status": "unhealthy", "error": e.message}
        if e.missing:
            result["missing"] = ", ".join(e.missing)
        return result

    return {
        "status": "healthy",
        "base_id": config.base_id,
        "table": config.table_name,
    }


def check_sentry() -> Dict[str, str]:
    try:
        import sentry_sdk
        return {
            "status": "healthy" if sentry_sdk.get_client().is_active() else "unhealthy",
            "dsn_configured": "true",
        }
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


@router.get("/health", response_model=HealthCheckResponse, status_code=status.HTTP_200_OK)
async def health_check():
    """Service health including Airtable configuration completeness."""
    checks = {"airtable_config": check_airtable_config()}
    dependencies = ["airtable"]

    if settings.sentry_dsn:
        checks["sentry"] = check_sentry()
        dependencies.append("sentry")

    overall_status = "healthy"
    for service, result in checks.items():
        if result.get("status") != "healthy":
            overall_status = "unhealthy" if service == "airtable_config" else "degraded"
            if overall_status == "unhealthy":
                break

    process = psutil.Process()
    response = HealthCheckResponse(
        status=overall_status,
        service="leadmagnet_api",
        environment=settings.environment,
        version=__version__,
        timestamp=_utc_timestamp(),
        uptime=time.time() - process.create_time(),
        checks=checks,
        dependencies=dependencies,
    )

    if overall_status == "healthy":
        logger.info("health.check", status=overall_status)
    else:
        logger.warning("health.check", status=overall_status, checks=checks)

    return response


@router.get("/health/live", status_code=status.HTTP_200_OK)
async def liveness_probe():
    """Simple liveness probe for containers."""
    return {
        "status": "alive",
        "timestamp": _utc_timestamp(),
    }
