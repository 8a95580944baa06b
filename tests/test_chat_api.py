"""Tests for the chatbot HTTP endpoints"""
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app


@pytest.fixture
def client():
    app = create_app(Settings(DEBOUNCE_WINDOW_MS=0))
    with TestClient(app) as test_client:
        yield test_client


def send(client, text, user_id="api-user"):
    return client.post("/chatbot/message", json={"user_id": user_id, "message": text})


def test_message_turns(client):
    response = send(client, "hello")

    assert response.status_code == 200
    body = response.json()
    assert "Welcome to the Help Desk Bot" in body["text"]
    assert len(body["options"]) == 3
    assert body["terminal"] is False
    assert body["data"]["outcome"] == "menu_repeated"

    body = send(client, "1").json()
    assert "Ticket Management" in body["text"]
    assert body["data"]["step_id"] == "tickets_menu"


def test_conversation_state_and_history(client):
    send(client, "hello")
    send(client, "1")

    state = client.get("/chatbot/conversation/api-user").json()
    assert state["current_step_id"] == "tickets_menu"
    assert state["history"] == ["welcome"]
    assert state["attempts"] == 0
    assert state["has_data"] is False

    history = client.get("/chatbot/conversation/api-user/history").json()
    assert history["message_count"] == 4
    assert [m["direction"] for m in history["messages"]] == [
        "incoming", "outgoing", "incoming", "outgoing",
    ]


def test_unknown_user_has_no_conversation(client):
    response = client.get("/chatbot/conversation/nobody")

    assert response.status_code == 404


def test_forced_restart(client):
    send(client, "hello")
    send(client, "1")

    response = client.post("/chatbot/conversation/api-user/restart")

    assert response.json()["success"] is True
    state = client.get("/chatbot/conversation/api-user").json()
    assert state["current_step_id"] == "welcome"
    assert state["history"] == []


def test_stats(client):
    send(client, "hello")

    stats = client.get("/chatbot/stats").json()

    assert stats["activeSessions"] == 1
    assert stats["totalSteps"] == 14


def test_step_listing_and_removal(client):
    listing = client.get("/chatbot/steps").json()
    assert listing["initial_step_id"] == "welcome"
    welcome = next(step for step in listing["steps"] if step["id"] == "welcome")
    assert welcome["transition"] == "options"
    assert welcome["allow_back"] is False

    assert client.delete("/chatbot/steps/welcome").status_code == 400
    assert client.delete("/chatbot/steps/missing").status_code == 404
    assert client.delete("/chatbot/steps/system_status").status_code == 200

    ids = [step["id"] for step in client.get("/chatbot/steps").json()["steps"]]
    assert "system_status" not in ids


def test_empty_message_is_rejected(client):
    response = client.post("/chatbot/message", json={"user_id": "api-user", "message": ""})

    assert response.status_code == 422


def test_health_reports_reaper(client):
    body = client.get("/chatbot/health").json()

    assert body["status"] == "healthy"
    assert body["service"] == "ChatbotService"
    assert body["reaper_running"] is True
    assert client.get("/health").json() == {"status": "healthy"}


def test_rapid_messages_are_debounced():
    with TestClient(create_app(Settings())) as client:
        send(client, "hello")
        body = send(client, "1").json()

    assert body["data"]["outcome"] == "debounced"
