from __future__ import annotations

from typing import Any

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class CPQError(RuntimeError):
    """Base exception for all CPQ connector errors."""


class CPQApiError(CPQError):
    """Raised when the CPQ API (or the transport in front of it) fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        method: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.method = method
        self.url = url
        self.attempts = 1

    @property
    def retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": str(self),
            "status_code": self.status_code,
            "response_body": self.response_body,
            "method": self.method,
            "url": self.url,
            "attempts": self.attempts,
        }


class CPQInputError(CPQError, ValueError):
    """Raised for caller input that can never succeed (bad JSON, missing IDs)."""


class CPQUnknownOperationError(CPQError, LookupError):
    """Raised when a (resource, operation) pair is not in the catalogue."""
