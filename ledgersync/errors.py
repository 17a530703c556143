"""Error taxonomy for the reconciliation service.

Every error carries an HTTP status and an optional remediation hint so the
HTTP layer can render it without knowing where it was raised.  Per-item
failures inside a batch never surface here; they are folded into the
batch report by the reconciliation engine.
"""

from __future__ import annotations

__all__ = [
    "AuthError",
    "ConfigError",
    "DecryptionError",
    "LedgerSyncError",
    "MissingFieldError",
    "NotFoundError",
    "PersistenceError",
    "RateLimitExceeded",
    "ShapeError",
    "UpstreamProviderError",
    "ValidationError",
]


class LedgerSyncError(Exception):
    """Base exception for ledgersync errors."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.message}
        if self.hint:
            body["hint"] = self.hint
        return body


class ValidationError(LedgerSyncError):
    """Missing or malformed required field."""

    status_code = 400


class ShapeError(ValidationError):
    """Generic-import payload does not contain an item array where expected."""

    status_code = 422


class MissingFieldError(ValidationError):
    """A mapped field required for identity is absent or empty."""

    status_code = 422


class AuthError(LedgerSyncError):
    """Bad or missing webhook signature, unauthenticated caller, tenant mismatch."""

    status_code = 401


class NotFoundError(LedgerSyncError):
    """Tenant or item absent."""

    status_code = 404


class UpstreamProviderError(LedgerSyncError):
    """Non-2xx response or network failure calling an external platform."""

    status_code = 502

    def __init__(self, message: str, *, provider: str = "", upstream_status: int | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.provider = provider
        self.upstream_status = upstream_status


class PersistenceError(LedgerSyncError):
    """Record store operation failed."""

    status_code = 500


class ConfigError(LedgerSyncError):
    """Missing secret, key or tenant credential."""

    status_code = 500


class DecryptionError(LedgerSyncError):
    """Vault blob is malformed or its authentication tag does not verify."""

    status_code = 500


class RateLimitExceeded(LedgerSyncError):
    """Caller exceeded the request budget for an endpoint class."""

    status_code = 429

    def __init__(self, message: str, *, retry_after: int = 60, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
