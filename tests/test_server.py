"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from supremo_gateway import server
from supremo_gateway.config import Config


def make_config(tmp_path, **overrides):
    values = dict(
        timezone="America/Sao_Paulo",
        state_dir=tmp_path,
        llm_api_url="http://localhost:8000",
        llm_model="test-model",
        llm_api_key=None,
        google_client_id="",
        google_client_secret="",
        google_refresh_token="",
        google_calendar_id="primary",
        trello_api_key="",
        trello_token="",
        trello_board_id="",
        trello_inbox_list_id="",
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def client(tmp_path, dispatcher, monkeypatch):
    monkeypatch.setattr(server, "_config", make_config(tmp_path, allowed_chat_ids={"u1"}))
    server.app.dependency_overrides[server.get_dispatcher] = lambda: dispatcher
    with TestClient(server.app) as test_client:
        yield test_client
    server.app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "gateway": True}


def test_message_returns_replies_with_buttons(client, classifier, memory):
    entry = memory.store_info("senha do wifi", "1234")
    classifier.reply("qual a senha do wifi?", [{"type": "query_info", "query": "wifi"}])

    response = client.post("/v1/messages", json={"user_id": "u1", "text": "qual a senha do wifi?"})

    assert response.status_code == 200
    reply = response.json()["replies"][0]
    assert reply["text"] == "🧠 *senha do wifi*\n1234"
    assert reply["markdown"] is True
    assert reply["buttons"][0][0] == {"text": "✏️ Atualizar", "callback_data": f"kb_update:{entry.id}"}


def test_callback(client):
    response = client.post("/v1/callbacks", json={"user_id": "u1", "data": "confirm_yes_conf_old"})
    assert response.status_code == 200
    assert response.json()["replies"][0]["text"].startswith("⚠️ Esta confirmação expirou")


def test_unlisted_chat_is_rejected(client, classifier):
    response = client.post("/v1/messages", json={"user_id": "intruder", "text": "oi"})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "403"
    assert classifier.calls == []


def test_invalid_payload(client):
    response = client.post("/v1/callbacks", json={"user_id": "u1", "data": ""})
    assert response.status_code == 422
