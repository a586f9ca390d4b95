"""
HTTP-level tests for the FastAPI app.
Services are wired with init_services() against the FakeLLMClient and an
in-memory store; the lifespan (and so config.yaml) is never touched.
"""

import pytest
from fastapi.testclient import TestClient

from promptrelay import main
from promptrelay.config import set_config
from promptrelay.errors import UpstreamError
from promptrelay.storage.session_store import InMemorySessionStore

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def boot(fake_client):
    """Return a function that wires the app with the given config blocks."""
    def _boot(**cfg):
        store = InMemorySessionStore()
        main.init_services(cfg, client=fake_client, store=store)
        return TestClient(main.app, raise_server_exceptions=False), store
    return _boot


@pytest.fixture
def client(boot):
    return boot()[0]


def _optimize(client, headers=ALICE, **body):
    body.setdefault("prompt", "Tell me about Python decorators")
    body.setdefault("strategy", "speed")
    return client.post("/api/v1/optimize", json=body, headers=headers)


# ---------------------------------------------------------------------------
# Health / catalog
# ---------------------------------------------------------------------------

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "healthy"
    assert data["service"] == "promptrelay"
    assert "timestamp" in data


def test_models_lists_enabled_only(client):
    data = client.get("/api/v1/models").json()
    assert "gpt-4o-mini" in data
    assert "gemini-lite" not in data


def test_strategies_and_types(client):
    strategies = [s["name"] for s in client.get("/api/v1/strategies").json()]
    assert strategies == ["quality", "speed", "consensus", "cost_effective"]
    types = {t["name"] for t in client.get("/api/v1/optimization-types").json()}
    assert "technical" in types


def test_test_model(client, fake_client):
    r = client.post("/api/v1/test-model", json={"model": "gpt-4o", "prompt": "ping"}, headers=ALICE)
    assert r.status_code == 200
    assert r.json()["response"] == "answer from gpt-4o"

    r = client.post("/api/v1/test-model", json={"prompt": "ping"}, headers=ALICE)
    assert r.status_code == 400
    r = client.post("/api/v1/test-model", json={"model": "gemini", "prompt": "ping"}, headers=ALICE)
    assert r.status_code == 400


# ---------------------------------------------------------------------------
# Optimize
# ---------------------------------------------------------------------------

def test_optimize(client, fake_client):
    r = _optimize(client)
    assert r.status_code == 200
    data = r.json()
    assert data["strategy"] == "speed"
    assert data["models_used"] == ["gpt-4o-mini"]
    assert data["final_response"] == "answer from gpt-4o-mini"
    assert data["metadata"]["session_id"]


def test_optimize_accepts_camel_case(client):
    r = _optimize(client, enableMemory=False, optimizationType="technical")
    assert r.status_code == 200
    assert "session_id" not in r.json()["metadata"]


def test_default_strategy_from_config(client):
    set_config({"strategies": {"default": "cost_effective"}})
    r = client.post("/api/v1/optimize", json={"prompt": "hello there"}, headers=ALICE)
    assert r.json()["strategy"] == "cost_effective"


def test_invalid_strategy(client, fake_client):
    r = _optimize(client, strategy="fastest")
    assert r.status_code == 400
    assert r.json()["error"] == "INVALID_STRATEGY"
    assert fake_client.calls == []


def test_invalid_json(client):
    r = client.post(
        "/api/v1/optimize",
        content="{not json",
        headers={**ALICE, "Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"


def test_empty_prompt(client):
    r = _optimize(client, prompt="   ")
    assert r.status_code == 400


def test_upstream_error_is_500_without_details(client, fake_client):
    fake_client.script("gpt-4o-mini", UpstreamError("bad gateway", model="gpt-4o-mini", status=502))
    r = _optimize(client)
    assert r.status_code == 500
    assert r.json()["error"] == "UPSTREAM_ERROR"
    assert "details" not in r.json()


def test_debug_mode_exposes_details(boot, fake_client):
    client, _ = boot(server={"debug": True})
    fake_client.script("gpt-4o-mini", UpstreamError("bad gateway", model="gpt-4o-mini", status=502))
    r = _optimize(client)
    assert "model=gpt-4o-mini" in r.json()["details"]


def test_unexpected_error_is_500(client, fake_client):
    fake_client.script("gpt-4o-mini", RuntimeError("kaboom"))
    r = _optimize(client)
    assert r.status_code == 500
    assert r.json()["error"] == "INTERNAL_SERVER_ERROR"


def test_rate_limited(boot):
    client, _ = boot(rate_limits={"optimize": 2})
    assert _optimize(client).status_code == 200
    assert _optimize(client).status_code == 200
    r = _optimize(client)
    assert r.status_code == 429
    assert r.json()["error"] == "RATE_LIMIT_EXCEEDED"
    # other callers are unaffected
    assert _optimize(client, headers=BOB).status_code == 200


def test_rate_limit_info(client):
    _optimize(client)
    data = client.get("/api/v1/rate-limit", headers=ALICE).json()
    assert data["request_count"] == 1
    assert data["limit"] == 60
    assert data["remaining"] == 59


# ---------------------------------------------------------------------------
# Public endpoint
# ---------------------------------------------------------------------------

def test_public_optimize_has_no_memory(boot):
    client, store = boot()
    r = client.post(
        "/api/v1/public/optimize",
        json={"prompt": "hello there", "strategy": "speed", "session_id": "whatever"},
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    assert r.status_code == 200
    data = r.json()
    assert "session_id" not in data["metadata"]
    assert data["rate_limit"]["request_count"] == 1
    assert store.list_sessions("anonymous") == []


def test_public_hourly_limit_per_address(boot):
    client, _ = boot(rate_limits={"public_hourly": 2})
    first = {"X-Forwarded-For": "203.0.113.7"}
    body = {"prompt": "hello there", "strategy": "speed"}

    assert client.post("/api/v1/public/optimize", json=body, headers=first).status_code == 200
    assert client.post("/api/v1/public/optimize", json=body, headers=first).status_code == 200
    assert client.post("/api/v1/public/optimize", json=body, headers=first).status_code == 429

    other = {"X-Real-IP": "198.51.100.4"}
    assert client.post("/api/v1/public/optimize", json=body, headers=other).status_code == 200

    info = client.get("/api/v1/public/rate-limit", headers=first).json()
    assert info["remaining"] == 0
    assert info["limit"] == 2


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def test_sessions_require_identity(client):
    assert client.get("/api/v1/sessions").status_code == 401
    assert client.post("/api/v1/sessions").status_code == 401


def test_create_and_list_sessions(client):
    r = client.post("/api/v1/sessions", json={"title": "Trip planning"}, headers=ALICE)
    assert r.status_code == 201
    assert r.json()["title"] == "Trip planning"

    r = client.post("/api/v1/sessions", headers=ALICE)
    assert r.status_code == 201

    data = client.get("/api/v1/sessions", headers=ALICE).json()
    assert data["count"] == 2
    assert client.get("/api/v1/sessions", headers=BOB).json()["count"] == 0


def test_session_detail_and_history(client):
    sid = _optimize(client).json()["metadata"]["session_id"]

    detail = client.get(f"/api/v1/sessions/{sid}", headers=ALICE).json()
    assert detail["title"] == "Python Programming"
    assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]

    history = client.get(f"/api/v1/sessions/{sid}/history?limit=1", headers=ALICE).json()
    assert history["count"] == 1
    assert history["messages"][0]["role"] == "assistant"


def test_foreign_session_is_404(client):
    sid = _optimize(client).json()["metadata"]["session_id"]
    assert client.get(f"/api/v1/sessions/{sid}", headers=BOB).status_code == 404
    assert client.delete(f"/api/v1/sessions/{sid}", headers=BOB).status_code == 404
    r = _optimize(client, headers=BOB, session_id=sid)
    assert r.status_code == 404


def test_delete_session(client):
    sid = _optimize(client).json()["metadata"]["session_id"]
    r = client.delete(f"/api/v1/sessions/{sid}", headers=ALICE)
    assert r.json() == {"session_id": sid, "deleted": True}
    assert client.get(f"/api/v1/sessions/{sid}", headers=ALICE).status_code == 404
    assert client.get("/api/v1/sessions", headers=ALICE).json()["count"] == 0


@pytest.mark.parametrize("path", [
    "/api/v1/sessions/not-a-uuid",
    "/api/v1/sessions/12345678123456781234567812345678",
])
def test_malformed_session_id(client, path):
    assert client.get(path, headers=ALICE).status_code == 400


@pytest.mark.parametrize("query", ["limit=0", "limit=101"])
def test_limit_bounds(client, query):
    assert client.get(f"/api/v1/sessions?{query}", headers=ALICE).status_code == 400


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------

def test_optimize_malformed_session_id(client, fake_client):
    r = _optimize(client, session_id="not-a-uuid")
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"
    assert fake_client.calls == []


@pytest.mark.parametrize("value", ["false", "true", 0])
def test_optimize_enable_memory_must_be_bool(boot, value):
    client, store = boot()
    r = _optimize(client, enableMemory=value)
    assert r.status_code == 400
    assert store.list_sessions("alice") == []


def test_optimize_memory_off(boot):
    client, store = boot()
    r = _optimize(client, enableMemory=False)
    assert r.status_code == 200
    assert "session_id" not in r.json()["metadata"]
    assert store.list_sessions("alice") == []


def test_optimize_custom_optimization_type(boot, fake_client):
    client, _ = boot(optimization_types={
        "concise": {"description": "Fewest words", "directive": "Rewrite it in few words."},
    })
    types = {t["name"] for t in client.get("/api/v1/optimization-types").json()}
    assert "concise" in types

    r = _optimize(client, strategy="quality", optimization_type="concise", enable_memory=False)
    assert r.status_code == 200
    assert r.json()["metadata"]["optimization_type"] == "concise"


# ---------------------------------------------------------------------------
# Upstream health
# ---------------------------------------------------------------------------

def test_health_with_upstream(client, fake_client):
    data = client.get("/health?upstream=true").json()
    assert data["status"] == "healthy"
    assert data["upstream"]["reachable"] is True

    assert "upstream" not in client.get("/health").json()


def test_health_upstream_unreachable(client, fake_client):
    fake_client.upstream = {"reachable": False, "served_models": [], "missing_models": []}
    data = client.get("/health?upstream=true").json()
    assert data["status"] == "degraded"


# ---------------------------------------------------------------------------
# Direct chat
# ---------------------------------------------------------------------------

def test_chat_requires_identity(client, fake_client):
    assert client.post("/api/v1/chat/send", json={"message": "hi"}).status_code == 401
    assert client.post("/api/v1/chat/strategy", json={"message": "hi"}).status_code == 401
    assert fake_client.calls == []


def test_chat_send(client):
    r = client.post(
        "/api/v1/chat/send",
        json={"message": "Tell me about Python decorators", "model": "gpt-4o"},
        headers=ALICE,
    )
    assert r.status_code == 200
    data = r.json()
    assert data["model"] == "gpt-4o"
    assert data["message"] == "answer from gpt-4o"
    assert data["is_new_session"] is True
    assert data["session_title"] == "Python Programming"

    sid = data["session_id"]
    r = client.post(
        "/api/v1/chat/send",
        json={"message": "Show an example", "sessionId": sid},
        headers=ALICE,
    )
    assert r.json()["session_id"] == sid
    assert r.json()["is_new_session"] is False

    history = client.get(f"/api/v1/sessions/{sid}/history", headers=ALICE).json()
    assert history["count"] == 4


@pytest.mark.parametrize("body", [
    {"message": "hi", "model": "gemini"},
    {"message": "hi", "temperature": 3},
    {"message": "   "},
    {"message": "hi", "session_id": "not-a-uuid"},
])
def test_chat_send_rejects(client, fake_client, body):
    r = client.post("/api/v1/chat/send", json=body, headers=ALICE)
    assert r.status_code == 400
    assert fake_client.calls == []


def test_chat_foreign_session_is_404(client):
    sid = _optimize(client).json()["metadata"]["session_id"]
    r = client.post("/api/v1/chat/send", json={"message": "hi", "session_id": sid}, headers=BOB)
    assert r.status_code == 404


def test_chat_rate_limited(boot):
    client, _ = boot(rate_limits={"chat": 1})
    body = {"message": "hello there"}
    assert client.post("/api/v1/chat/send", json=body, headers=ALICE).status_code == 200
    assert client.post("/api/v1/chat/send", json=body, headers=ALICE).status_code == 429
    # optimize has its own budget
    assert _optimize(client).status_code == 200


def test_chat_strategy(client, fake_client):
    r = client.post(
        "/api/v1/chat/strategy",
        json={"message": "Summarize the French Revolution", "strategy": "precise"},
        headers=ALICE,
    )
    assert r.status_code == 200
    assert r.json()["model"] == "gpt-4o"
    assert fake_client.calls[0]["temperature"] == 0.2


def test_chat_presets(client):
    presets = {p["name"]: p for p in client.get("/api/v1/chat/presets").json()}
    assert set(presets) >= {"default", "precise", "creative", "reasoning"}
    assert presets["creative"]["temperature"] == 0.9


def test_public_chat(boot, fake_client):
    client, store = boot()
    r = client.post(
        "/api/v1/public/chat/send",
        json={"message": "What is a closure?", "session_id": "ignored"},
        headers={"X-Forwarded-For": "203.0.113.7"},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["session_id"] is None
    assert data["model"] == "gpt-4o-mini"
    assert data["rate_limit"]["request_count"] == 1
    assert store.list_sessions("anonymous") == []


def test_public_chat_shares_hourly_budget(boot):
    client, _ = boot(rate_limits={"public_hourly": 1})
    headers = {"X-Forwarded-For": "203.0.113.7"}
    body = {"prompt": "hello there", "strategy": "speed"}
    assert client.post("/api/v1/public/optimize", json=body, headers=headers).status_code == 200
    r = client.post("/api/v1/public/chat/send", json={"message": "hi"}, headers=headers)
    assert r.status_code == 429


def test_public_chat_info(boot):
    client, _ = boot(rate_limits={"public_hourly": 12})
    info = client.get("/api/v1/public/chat/info").json()
    assert info["model"] == "gpt-4o-mini"
    assert info["features"]["authentication"] is False
    assert info["rate_limit"] == {"requests": 12, "period": "1 hour"}
