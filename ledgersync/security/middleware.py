"""Security middleware for FastAPI: auth, CORS, rate limiting, error rendering.

Middleware ordering (outermost first):
1. CORS -- handles OPTIONS preflight before auth
2. Auth -- shared service token on everything except health and webhooks

Webhook receivers rate-limit through a dependency keyed by client IP.  Tenant
routes call ``check_rate_limit`` with the org from their validated body.
"""

from __future__ import annotations

import hmac
import logging
import re

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ledgersync.config import Settings
from ledgersync.errors import AuthError, LedgerSyncError, RateLimitExceeded
from ledgersync.models import ORGANIZATIONS_TABLE
from ledgersync.ratelimit import RATE_LIMITS

logger = logging.getLogger(__name__)

SKIP_METHODS = {"OPTIONS"}

# (method, path) pairs that never require the service token
PUBLIC_ALLOWLIST = {("GET", "/health")}

_WEBHOOK_PATH = re.compile(r"^/webhooks/[a-z]+/?$")


def is_webhook_path(path: str) -> bool:
    return bool(_WEBHOOK_PATH.match(path))


def extract_bearer_token(auth_header: str | None) -> str | None:
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _auth_failure(exc: AuthError) -> JSONResponse:
    # Middleware responses bypass the app exception handlers
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers={"WWW-Authenticate": "Bearer"})


class AuthMiddleware(BaseHTTPMiddleware):
    """Require the shared service token when one is configured.

    Webhook receivers are public but signature-verified by the pipeline.
    """

    def __init__(self, app, api_token: str = "") -> None:
        super().__init__(app)
        self.api_token = api_token

    async def dispatch(self, request: Request, call_next):
        method = request.method
        path = request.url.path

        if not self.api_token or method in SKIP_METHODS:
            return await call_next(request)

        if (method, path) in PUBLIC_ALLOWLIST or is_webhook_path(path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization"))
        if not token:
            return _auth_failure(AuthError("Authentication required"))
        if not hmac.compare_digest(token, self.api_token):
            return _auth_failure(AuthError("Invalid or expired credentials"))
        return await call_next(request)


def _rate_limit_subject(request: Request, org_id: str | None) -> str:
    """Tenant windows only for orgs that exist; everything else shares the caller's IP window."""
    store = getattr(request.app.state, "store", None)
    if org_id and store is not None and store.find(ORGANIZATIONS_TABLE, {"id": org_id}, limit=1):
        return f"org:{org_id}"
    return f"ip:{_get_client_ip(request)}"


def check_rate_limit(request: Request, limit_class: str, org_id: str | None = None) -> None:
    """Apply a rate-limit preset keyed ``"{org:<id>|ip:<addr>}:{class}"``.

    ``org_id`` must come from the validated request body; header and query
    values are never used for the key.
    """
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return
    config = RATE_LIMITS[limit_class]
    subject = _rate_limit_subject(request, org_id)
    decision = limiter.check(f"{subject}:{limit_class}", config.limit, config.window_seconds)
    if not decision.allowed:
        logger.info("Rate limit exceeded for %s:%s", subject, limit_class)
        raise RateLimitExceeded(
            "Rate limit exceeded. Please try again later.",
            retry_after=decision.retry_after(),
        )


def rate_limit(limit_class: str):
    """FastAPI dependency applying a preset keyed by client IP."""

    async def dependency(request: Request) -> None:
        check_rate_limit(request, limit_class)

    return dependency


# ── Exception handlers ────────────────────────────────────────────────────


def _ledgersync_error_handler(request: Request, exc: LedgerSyncError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(exc.retry_after)}
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request body"
    return JSONResponse({"error": message}, status_code=400)


def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def install_security_middleware(app: FastAPI, settings: Settings) -> None:
    """Install middleware and exception handlers on the app.

    Middleware is added in reverse order (last added = outermost = runs first).
    """
    app.add_middleware(AuthMiddleware, api_token=settings.api_token)

    app.add_exception_handler(LedgerSyncError, _ledgersync_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
