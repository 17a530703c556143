"""Logging configuration with secret redaction.

Provider tokens must never reach a log sink.  Call sites avoid passing
credentials to log calls; the filter below masks anything that slips
through (bearer headers, Shopify admin tokens, configured secrets).
"""

from __future__ import annotations

import logging
import re

__all__ = ["SecretRedactingFilter", "configure_logging", "redact_secrets"]

_REDACTED = "[REDACTED]"

_TOKEN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]+"),
    re.compile(r"\bshp(?:at|ca|pa|ss)_[A-Fa-f0-9]{16,}\b"),
    re.compile(r"(?i)(x-auth-token|x-shopify-access-token)(['\"]?\s*[:=]\s*['\"]?)[^\s,'\"}]+"),
)


def redact_secrets(text: str, extra_secrets: tuple[str, ...] = ()) -> str:
    """Mask known token shapes and any literal secret in ``extra_secrets``."""
    for secret in extra_secrets:
        if secret:
            text = text.replace(secret, _REDACTED)
    for pattern in _TOKEN_PATTERNS:
        if pattern.groups >= 2:
            text = pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}{_REDACTED}", text)
        else:
            text = pattern.sub(_REDACTED, text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Rewrite log records so rendered messages carry no secrets."""

    def __init__(self, secrets: tuple[str, ...] = ()) -> None:
        super().__init__()
        self._secrets = tuple(s for s in secrets if s)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message, self._secrets)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO", secrets: tuple[str, ...] = ()) -> None:
    """Install a root stream handler with secret redaction."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    handler.addFilter(SecretRedactingFilter(secrets))

    # Replace handlers we installed previously (reload-safe)
    for existing in list(root.handlers):
        if getattr(existing, "_ledgersync", False):
            root.removeHandler(existing)
    handler._ledgersync = True  # type: ignore[attr-defined]
    root.addHandler(handler)
