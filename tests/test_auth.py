"""Tests for admin API authentication, webhook secrets and PII redaction."""

import httpx
import pytest
from fastapi.testclient import TestClient

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from backoffice.app import create_app
from backoffice.auth import webhook_secret_ok
from backoffice.config import Settings
from backoffice.formatters import redact_pii
from gateway.telegram import TelegramClient


def admin_client(admin_api_key="", debug=False):
    """TestClient over an app built from its own ``Settings``."""
    telegram = TelegramClient(
        "TOKEN",
        api_url="https://tg.test",
        http=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True, "result": {}}))
        ),
        retry_delay=0,
    )
    config = Settings(
        telegram_bot_token="123:token",
        admin_api_key=admin_api_key,
        data_dir="",
        debug=debug,
    )
    return TestClient(create_app(config=config, telegram=telegram))


# ── Admin token ──────────────────────────────────────────────────

class TestAdminToken:
    def test_correct_token_allowed(self):
        with admin_client(admin_api_key="secret") as client:
            resp = client.get("/api/wizards", headers={"Authorization": "Bearer secret"})
        assert resp.status_code == 200

    def test_wrong_token_rejected(self):
        with admin_client(admin_api_key="secret") as client:
            resp = client.get("/api/wizards", headers={"Authorization": "Bearer wrong"})
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_missing_token_rejected(self):
        with admin_client(admin_api_key="secret") as client:
            assert client.get("/api/sessions").status_code == 401

    def test_no_key_open_in_debug(self):
        with admin_client(admin_api_key="", debug=True) as client:
            assert client.get("/api/sessions").status_code == 200

    def test_no_key_locked_in_production(self):
        with admin_client(admin_api_key="", debug=False) as client:
            resp = client.get("/api/sessions", headers={"Authorization": "Bearer anything"})
        assert resp.status_code == 403

    def test_each_app_uses_its_own_key(self):
        with admin_client(admin_api_key="first") as first, admin_client(admin_api_key="second") as second:
            assert first.get("/api/wizards", headers={"Authorization": "Bearer first"}).status_code == 200
            assert second.get("/api/wizards", headers={"Authorization": "Bearer first"}).status_code == 401


# ── Webhook secret ───────────────────────────────────────────────

class TestWebhookSecret:
    def test_no_secret_configured_accepts_all(self):
        assert webhook_secret_ok("", None)
        assert webhook_secret_ok("", "anything")

    def test_matching_secret(self):
        assert webhook_secret_ok("s3cret", "s3cret")

    def test_wrong_secret(self):
        assert not webhook_secret_ok("s3cret", "nope")

    def test_missing_header(self):
        assert not webhook_secret_ok("s3cret", None)


# ── PII redaction ────────────────────────────────────────────────

class TestPiiRedaction:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("12345678Z", "123***8Z"),
            ("user@example.com", "use***om"),
            ("abc", "***"),
            ("", "***"),
        ],
    )
    def test_redacts(self, value, expected):
        assert redact_pii(value) == expected
