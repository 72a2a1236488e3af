"""
Tests for structured logging helpers (core.logging).
"""
import structlog

from chainshop.app.core.logging import bind_wallet_context, redact_sensitive


def test_redact_sensitive_masks_secrets():
    event = redact_sensitive(None, "info", {"event": "Login", "password": "hunter2", "token": "jwt", "email": "a@b.c"})
    assert event["password"] == "***"
    assert event["token"] == "***"
    assert event["email"] == "a@b.c"


def test_redact_sensitive_keeps_empty_values():
    event = redact_sensitive(None, "info", {"event": "Logout", "token": None})
    assert event["token"] is None


def test_bind_wallet_context():
    structlog.contextvars.clear_contextvars()

    bind_wallet_context("0x1234567890abcdef1234567890abcdef12345678", 97)
    assert structlog.contextvars.get_contextvars() == {
        "wallet": "0x1234567890abcdef1234567890abcdef12345678",
        "chain_id": 97,
    }

    bind_wallet_context(None, None)
    assert structlog.contextvars.get_contextvars() == {}
