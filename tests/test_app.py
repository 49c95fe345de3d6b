"""Tests for the FastAPI surface: health, webhook and admin API."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from backoffice.app import create_app
from backoffice.config import Settings
from gateway.telegram import TelegramClient

SECRET = "hook-secret"
ADMIN_KEY = "admin-key"
AUTH = {"Authorization": f"Bearer {ADMIN_KEY}"}


def message(text, user_id=1001):
    return {"update_id": 1, "message": {"chat": {"id": user_id}, "from": {"id": user_id}, "text": text}}


def callback(data, user_id=1001, message_id=None):
    origin = {"chat": {"id": user_id}}
    if message_id is not None:
        origin["message_id"] = message_id
    return {
        "update_id": 2,
        "callback_query": {"id": "cb", "from": {"id": user_id}, "message": origin, "data": data},
    }


@pytest.fixture
def sent():
    return []


@pytest.fixture
def client(sent):
    def handler(request):
        sent.append((request.url.path.rsplit("/", 1)[-1], json.loads(request.content)))
        return httpx.Response(200, json={"ok": True, "result": {}})

    telegram = TelegramClient(
        "TOKEN",
        api_url="https://tg.test",
        http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_delay=0,
    )
    config = Settings(
        telegram_bot_token="123:token",
        telegram_webhook_secret=SECRET,
        admin_api_key=ADMIN_KEY,
        data_dir="",
        debug=True,
    )
    with TestClient(create_app(config=config, telegram=telegram)) as test_client:
        yield test_client


def post_update(client, update, secret=SECRET):
    headers = {"X-Telegram-Bot-Api-Secret-Token": secret} if secret else {}
    return client.post("/telegram/webhook", json=update, headers=headers)


# ── Package ──────────────────────────────────────────────────────

class TestPackage:
    def test_imports_with_docstring(self):
        import backoffice

        assert "WizardEngine" in backoffice.__doc__


# ── Health ───────────────────────────────────────────────────────

class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["active_sessions"] == 0


# ── Webhook ──────────────────────────────────────────────────────

class TestWebhook:
    def test_rejects_bad_secret(self, client, sent):
        assert post_update(client, message("/start"), secret="wrong").status_code == 403
        assert post_update(client, message("/start"), secret=None).status_code == 403
        assert sent == []

    def test_rejects_non_object_body(self, client):
        resp = client.post(
            "/telegram/webhook",
            content=b"[1, 2]",
            headers={"X-Telegram-Bot-Api-Secret-Token": SECRET, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400

    def test_start_sends_menu(self, client, sent):
        resp = post_update(client, message("/start"))
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        method, payload = sent[-1]
        assert method == "sendMessage"
        assert payload["chat_id"] == "1001"
        assert "inline_keyboard" in payload["reply_markup"]

    def test_wizard_over_webhook(self, client, sent):
        post_update(client, callback("wiz:start:search-customer"))
        assert [m for m, _ in sent] == ["answerCallbackQuery", "sendMessage"]
        assert "Paso 1 de 1" in sent[-1][1]["text"]
        assert client.get("/health").json()["active_sessions"] == 1

        post_update(client, message("Juan"))
        assert "wiz:confirm" in json.dumps(sent[-1][1]["reply_markup"])

        post_update(client, callback("wiz:confirm"))
        assert [m for m, _ in sent[-3:]] == ["answerCallbackQuery", "sendChatAction", "sendMessage"]
        assert "No hay clientes" in sent[-1][1]["text"]
        assert client.get("/health").json()["active_sessions"] == 0

    def test_menu_button_edits_its_message(self, client, sent):
        post_update(client, callback("menu:principal", message_id=55))
        assert [m for m, _ in sent] == ["answerCallbackQuery", "editMessageText"]
        assert sent[-1][1]["message_id"] == 55
        assert "inline_keyboard" in sent[-1][1]["reply_markup"]

    def test_ignores_unknown_update(self, client, sent):
        assert post_update(client, {"update_id": 9, "poll": {}}).status_code == 200
        assert sent == []


# ── Admin API ────────────────────────────────────────────────────

class TestAdminApi:
    def test_requires_token(self, client):
        assert client.get("/api/sessions").status_code == 401
        assert client.get("/api/wizards", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_sessions(self, client):
        assert client.get("/api/sessions", headers=AUTH).json() == {"sessions": [], "count": 0}

        post_update(client, callback("wiz:start:create-customer"))
        post_update(client, message("Juan"))

        listing = client.get("/api/sessions", headers=AUTH).json()
        assert listing["count"] == 1
        assert listing["sessions"][0]["intent"] == "create-customer"

        detail = client.get("/api/sessions/1001", headers=AUTH).json()
        assert detail["collected"] == {"nombre": "Juan"}
        assert detail["cursor"] == 1

    def test_unknown_session(self, client):
        assert client.get("/api/sessions/42", headers=AUTH).status_code == 404
        assert client.delete("/api/sessions/42", headers=AUTH).status_code == 404

    def test_cancel_session(self, client):
        post_update(client, callback("wiz:start:create-customer"))
        resp = client.delete("/api/sessions/1001", headers=AUTH)
        assert resp.json() == {"cancelled": "create-customer"}
        assert client.get("/api/sessions/1001", headers=AUTH).status_code == 404

    def test_wizards(self, client):
        wizards = client.get("/api/wizards", headers=AUTH).json()["wizards"]
        intents = {w["intent"] for w in wizards}
        assert {"create-customer", "generate-invoice", "register-payment"} <= intents
        payment = next(w for w in wizards if w["intent"] == "register-payment")
        assert payment["commit"] == "register_payment"
        reference = next(s for s in payment["steps"] if s["key"] == "referencia")
        assert reference["depends_on"] == "metodo"
        assert reference["required"] is False
