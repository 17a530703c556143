"""Tests for secret redaction in log output."""

from __future__ import annotations

import logging

from ledgersync.logging_setup import SecretRedactingFilter, configure_logging, redact_secrets


class TestRedactSecrets:
    def test_bearer_header(self):
        assert redact_secrets("Authorization: Bearer abc.def-123") == "Authorization: [REDACTED]"

    def test_shopify_admin_token(self):
        text = "token=shpat_0123456789abcdef0123"
        assert "shpat_" not in redact_secrets(text)

    def test_header_value_keeps_name(self):
        assert redact_secrets("X-Auth-Token: bc-secret-1") == "X-Auth-Token: [REDACTED]"

    def test_configured_secret(self):
        assert redact_secrets("key is hunter2!", ("hunter2",)) == "key is [REDACTED]!"

    def test_plain_text_untouched(self):
        assert redact_secrets("Created: 2, Updated: 1, Failed: 0") == "Created: 2, Updated: 1, Failed: 0"


def test_filter_rewrites_formatted_message():
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "calling with %s", ("Bearer tok123",), None)
    assert SecretRedactingFilter().filter(record) is True
    assert record.getMessage() == "calling with [REDACTED]"


def test_configure_logging_replaces_own_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        configure_logging("DEBUG", secrets=("s3cret",))
        configure_logging("INFO", secrets=("s3cret",))
        ours = [h for h in root.handlers if getattr(h, "_ledgersync", False)]
        assert len(ours) == 1
        assert root.level == logging.INFO
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
