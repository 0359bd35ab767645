"""
Folio - Exception Hierarchy
============================
Domain errors raised across the sync and chat pipelines.

``ConfigurationError``
    Required credentials are missing.  Fatal to sync, reported, never
    retried.
``UpstreamError``
    The embedding provider, chat model, or vector store failed or
    returned malformed data.  Fatal in sync, degraded around in chat.
``DimensionMismatch``
    Two vectors of different length were compared.  A programmer error.
"""

from __future__ import annotations

from typing import Any


class FolioError(Exception):
    """Base exception for all Folio errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(FolioError):
    """Raised when a required credential or setting is missing."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message, {"missing": missing} if missing else None)
        self.missing = missing or []


class UpstreamError(FolioError):
    """Raised when an external service call fails or returns malformed data."""

    def __init__(self, service: str, message: str, status_code: int | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(f"{service}: {message}", details)
        self.service = service
        self.status_code = status_code


class DimensionMismatch(FolioError):
    """Raised when vectors of unequal length are compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Embeddings must have the same length ({left} != {right})", {"left": left, "right": right})
        self.left = left
        self.right = right
