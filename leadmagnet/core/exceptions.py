# leadmagnet/core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class BaseAPIException(Exception):
    """Base exception for all API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class APIError(BaseAPIException):
    """Generic API error."""
    def __init__(self, message: str = "An error occurred", **kwargs):
        super().__init__(message, status_code=500, **kwargs)


class ExternalServiceError(BaseAPIException):
    """External service error."""
    def __init__(self, message: str = "External service error", **kwargs):
        super().__init__(message, status_code=502, **kwargs)


class AirtableError(ExternalServiceError):
    """Base error for the Airtable record store."""


class AirtableConfigError(AirtableError):
    """Airtable environment configuration is missing or malformed."""

    def __init__(self, message: str, missing: Iterable[str] = (), **kwargs):
        self.missing = list(missing)
        super().__init__(message, code="airtable_config_error", details={"missing": self.missing}, **kwargs)


class AirtableRequestError(AirtableError):
    """Non-success response (or transport failure) from the Airtable API."""

    def __init__(self, status: int, body: str = "", **kwargs):
        self.status = status
        self.body = body[:400]
        super().__init__(
            f"Airtable request failed ({status}): {self.body}",
            code="airtable_request_failed",
            details={"status": status},
            **kwargs,
        )


class InvalidInputError(BaseAPIException):
    """Request input failed local validation and never reached the record store."""
    def __init__(self, message: str = "Invalid input", **kwargs):
        super().__init__(message, status_code=400, **kwargs)
