# src/services/exceptions.py

"""Exception hierarchy for the product_finder pipeline.

Errors split into two propagation classes:

- run-level: :class:`SourceUnavailable` raised while enumerating aborts the
  whole run and surfaces to whatever triggered it (CLI or webhook).
- per-item: :class:`ImageUnreadable`, :class:`ClassificationFailed`,
  :class:`ResolverUnavailable` and :class:`CatalogWriteFailed` are caught by
  the orchestrator, logged against the offending candidate, and the run
  moves on to the next one.

The webhook layer maps :class:`MissingSignature` and
:class:`MalformedNotification` to HTTP 400 and :class:`InvalidSignature` to
HTTP 403.
"""

from typing import Any


class ProductFinderError(Exception):
    """Base exception for all product_finder errors."""

    def __init__(
        self,
        message: str,
        code: str = "PRODUCT_FINDER_ERROR",
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


# ── Run-level ─────────────────────────────────────────────


class SourceUnavailable(ProductFinderError):
    """The image source cannot be listed or read from."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, "SOURCE_UNAVAILABLE", details, cause)


# ── Per-item ──────────────────────────────────────────────


class ImageUnreadable(ProductFinderError):
    """A staged image cannot be opened or re-encoded."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, "IMAGE_UNREADABLE", details, cause)


class ClassificationFailed(ProductFinderError):
    """The vision call failed or returned no usable product data."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message, "CLASSIFICATION_FAILED", details, cause
        )


class ResolverUnavailable(ProductFinderError):
    """The marketplace could not be reached within the time bound."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message, "RESOLVER_UNAVAILABLE", details, cause
        )


class CatalogWriteFailed(ProductFinderError):
    """The catalog or its public snapshot could not be written."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message, "CATALOG_WRITE_FAILED", details, cause
        )


# ── Change notifications ──────────────────────────────────


class InvalidSignature(ProductFinderError):
    """Notification signature does not match the request body."""

    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(message, "INVALID_SIGNATURE")


class MissingSignature(InvalidSignature):
    """Notification arrived without a signature header."""

    def __init__(self, message: str = "Missing signature header") -> None:
        super().__init__(message)
        self.code = "MISSING_SIGNATURE"


class MalformedNotification(ProductFinderError):
    """Notification body is not the expected JSON shape."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message, "MALFORMED_NOTIFICATION", cause=cause
        )
