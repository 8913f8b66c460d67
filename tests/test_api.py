"""
Tests for the HTTP surface.
Each test gets its own app, store and scripted backend; no network.
"""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import FailingBackend, ScriptedBackend
from sigmagpt.backends.canned import CannedBackend
from sigmagpt.config import build_config
from sigmagpt.main import cors_origins, create_app
from sigmagpt.storage.memory_store import ConversationStore


def _sse(text: str) -> list:
    frames = [f for f in text.split("\n\n") if f]
    out = []
    for frame in frames:
        assert frame.startswith("data: ")
        payload = frame[6:]
        out.append(payload if payload == "[DONE]" else json.loads(payload))
    return out


@pytest.fixture
def backend():
    return ScriptedBackend(reply="Hi! How can I help?")


@pytest.fixture
def client(cfg, store, backend):
    app = create_app(cfg, store=store, backend=backend)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


def test_module_level_app_builds():
    import sigmagpt.main

    assert sigmagpt.main.app.title == "SigmaGPT"
    assert isinstance(sigmagpt.main.app.state.store, ConversationStore)


# ── Health / debug ────────────────────────────────────────────────────────────

def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "OK"
    assert r.json()["message"]


def test_debug_never_leaks_credentials(store):
    cfg = build_config({}, env={"OPENAI_API_KEY": "sk-very-secret", "NODE_ENV": "production"})
    app = create_app(cfg, store=store, backend=ScriptedBackend())
    with TestClient(app) as c:
        r = c.get("/api/debug")
    data = r.json()
    assert data["openaiConfigured"] is True
    assert data["geminiConfigured"] is False
    assert data["environment"] == "production"
    assert "sk-very-secret" not in r.text


# ── Conversations CRUD ────────────────────────────────────────────────────────

def test_create_and_get(client):
    created = client.post("/api/conversations").json()
    assert created["title"] == "New Chat"
    assert created["messages"] == []
    assert created["createdAt"] == created["updatedAt"]

    fetched = client.get(f"/api/conversations/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json() == created


def test_get_unknown_is_404(client):
    r = client.get("/api/conversations/does-not-exist")
    assert r.status_code == 404
    assert r.json() == {"error": "Conversation not found"}


def test_list_summaries(client):
    a = client.post("/api/conversations").json()
    b = client.post("/api/conversations").json()
    listing = client.get("/api/conversations").json()
    assert {c["id"] for c in listing} == {a["id"], b["id"]}
    for item in listing:
        assert set(item) == {"id", "title", "createdAt", "updatedAt"}


def test_delete(client):
    conv = client.post("/api/conversations").json()
    r = client.delete(f"/api/conversations/{conv['id']}")
    assert r.status_code == 200
    assert r.json() == {"message": "Conversation deleted successfully"}

    assert client.get(f"/api/conversations/{conv['id']}").status_code == 404
    second = client.delete(f"/api/conversations/{conv['id']}")
    assert second.status_code == 404
    assert second.json() == {"error": "Conversation not found"}


def test_stores_are_isolated(cfg):
    s1, s2 = ConversationStore(), ConversationStore()
    with TestClient(create_app(cfg, store=s1, backend=ScriptedBackend())) as c1:
        c1.post("/api/conversations")
    with TestClient(create_app(cfg, store=s2, backend=ScriptedBackend())) as c2:
        assert c2.get("/api/conversations").json() == []
    assert len(s1) == 1


# ── Buffered send ────────────────────────────────────────────────────────────

def test_send_message_example(client):
    conv = client.post("/api/conversations").json()
    r = client.post(f"/api/conversations/{conv['id']}/messages", json={"message": "Hello"})
    assert r.status_code == 200
    data = r.json()
    assert data["userMessage"]["content"] == "Hello"
    assert data["assistantMessage"]["role"] == "assistant"
    assert data["conversation"] == {
        "id": conv["id"],
        "title": "Hello",
        "updatedAt": data["conversation"]["updatedAt"],
    }

    full = client.get(f"/api/conversations/{conv['id']}").json()
    assert [m["role"] for m in full["messages"]] == ["user", "assistant"]
    assert full["title"] == "Hello"


def test_send_to_unknown_id_creates_conversation(client):
    r = client.post("/api/conversations/brand-new/messages", json={"message": "Hi"})
    assert r.status_code == 200
    assert client.get("/api/conversations/brand-new").status_code == 200


@pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}, {"message": 5}, ["Hello"]])
def test_send_missing_message_is_400(client, body):
    r = client.post("/api/conversations/x/messages", json=body)
    assert r.status_code == 400
    assert r.json() == {"error": "Message is required"}


def test_send_non_json_body_is_400(client):
    r = client.post(
        "/api/conversations/x/messages",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 400


def test_send_provider_failure_is_502_without_detail(cfg, store):
    with TestClient(create_app(cfg, store=store, backend=FailingBackend())) as c:
        r = c.post("/api/conversations/x/messages", json={"message": "Hello"})
    assert r.status_code == 502
    assert r.json() == {"error": "Failed to get response from AI"}
    assert FailingBackend.SECRET not in r.text


# ── Streaming send ───────────────────────────────────────────────────────────

def test_stream_happy_path(client):
    conv = client.post("/api/conversations").json()
    r = client.post(f"/api/conversations/{conv['id']}/stream", json={"message": "Hello"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["cache-control"] == "no-cache"
    assert r.text.endswith("data: [DONE]\n\n")

    events = _sse(r.text)
    assert events[0]["type"] == "user_message"
    assert events[0]["data"]["content"] == "Hello"
    assert events[1]["type"] == "assistant_start"
    chunks = [e["data"]["content"] for e in events[:-1] if e["type"] == "assistant_chunk"]
    complete = events[-2]
    assert complete["type"] == "assistant_complete"
    assert "".join(chunks) == complete["data"]["message"]["content"]
    assert complete["data"]["conversation"]["title"] == "Hello"


def test_stream_missing_message_is_400(client):
    r = client.post("/api/conversations/x/stream", json={})
    assert r.status_code == 400
    assert r.json() == {"error": "Message is required"}


def test_stream_provider_failure(cfg, store):
    with TestClient(create_app(cfg, store=store, backend=FailingBackend())) as c:
        r = c.post("/api/conversations/x/stream", json={"message": "Hello"})
    assert r.status_code == 200
    events = _sse(r.text)
    assert events[-1] == "[DONE]"
    assert events[-2] == {"type": "error", "data": {"message": "Failed to get response from AI"}}
    assert FailingBackend.SECRET not in r.text


def test_stream_with_canned_backend(cfg, store):
    backend = CannedBackend(min_delay=0, max_delay=0)
    with TestClient(create_app(cfg, store=store, backend=backend)) as c:
        r = c.post("/api/conversations/x/stream", json={"message": "hello there"})
    events = _sse(r.text)
    chunks = [e["data"]["content"] for e in events[:-1] if e["type"] == "assistant_chunk"]
    assert "".join(chunks) == events[-2]["data"]["message"]["content"]
    assert store.get("x").messages[1].content == events[-2]["data"]["message"]["content"]


# ── CORS ─────────────────────────────────────────────────────────────────────

def test_cors_origins_by_environment():
    assert cors_origins(build_config({}, env={})) == ["http://localhost:3000", "http://localhost:3003"]
    assert cors_origins(build_config({}, env={"NODE_ENV": "production"})) == []
    prod = build_config({"cors": {"allowed_origins": ["https://chat.example.com"]}}, env={"NODE_ENV": "production"})
    assert cors_origins(prod) == ["https://chat.example.com"]


def test_cors_dev_origin_allowed(client):
    r = client.get("/api/health", headers={"Origin": "http://localhost:3000"})
    assert r.headers.get("access-control-allow-origin") == "http://localhost:3000"


def test_cors_production_rejects_unlisted_origin(store):
    cfg = build_config({"cors": {"allowed_origins": ["https://chat.example.com"]}}, env={"NODE_ENV": "production"})
    with TestClient(create_app(cfg, store=store, backend=ScriptedBackend())) as c:
        bad = c.get("/api/health", headers={"Origin": "http://evil.example"})
        good = c.get("/api/health", headers={"Origin": "https://chat.example.com"})
    assert "access-control-allow-origin" not in bad.headers
    assert good.headers.get("access-control-allow-origin") == "https://chat.example.com"
