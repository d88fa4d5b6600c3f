# leadmagnet/services/normalization.py
"""Field normalizers for untrusted lead input.

Every normalizer accepts any value and returns either a cleaned value or
``None``. None of them raise.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from leadmagnet.core.constants import LeadSource

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]+")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_RECORD_ID_PATTERN = re.compile(r"^rec[a-zA-Z0-9]{8,}$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_WHITESPACE = re.compile(r"\s+")

EMAIL_MAX_LENGTH = 320
TOKEN_MAX_LENGTH = 120
NAME_MAX_LENGTH = 120


def normalize_text(value: Any, max_length: int = 255) -> Optional[str]:
    if not isinstance(value, str):
        return None

    cleaned = _CONTROL_CHARS.sub(" ", value).strip()
    if not cleaned:
        return None

    return cleaned[:max_length]


def normalize_email(value: Any) -> Optional[str]:
    text = normalize_text(value, EMAIL_MAX_LENGTH)
    if not text:
        return None

    normalized = text.lower()
    if not _EMAIL_PATTERN.match(normalized):
        return None

    return normalized


def normalize_token(value: Any) -> Optional[str]:
    token = normalize_text(value, TOKEN_MAX_LENGTH)
    if not token:
        return None

    if not _TOKEN_PATTERN.match(token):
        return None

    return token


def normalize_first_name(value: Any) -> Optional[str]:
    return normalize_text(value, NAME_MAX_LENGTH)


def normalize_lead_source(value: Any) -> Optional[LeadSource]:
    if not isinstance(value, str):
        return None

    try:
        return LeadSource(value.strip().lower())
    except ValueError:
        return None


def normalize_record_id(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None

    trimmed = value.strip()
    if not _RECORD_ID_PATTERN.match(trimmed):
        return None

    return trimmed


def normalize_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value

    if value == "true":
        return True
    if value == "false":
        return False

    return None


def format_timestamp(moment: datetime) -> str:
    """Canonical UTC timestamp with millisecond precision, e.g. 2026-03-01T09:15:00.000Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def normalize_iso_timestamp(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"

    try:
        return format_timestamp(datetime.fromisoformat(raw))
    except (ValueError, OverflowError):
        # unparseable, or out of range once shifted to UTC
        return None


def normalize_download_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(0, math.floor(value))

    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return max(0, int(match.group(1)))

    return 0


def derive_name_from_email(email: str) -> str:
    local_part = email.split("@")[0].strip()
    normalized = _WHITESPACE.sub(" ", _NON_ALNUM.sub(" ", local_part)).strip()
    return normalized or "Lead"
