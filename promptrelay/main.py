"""
FastAPI application, the promptrelay entry point.

Thin glue over ModelOrchestrator: parses bodies, resolves the caller,
applies rate limits and maps the error taxonomy to HTTP. Caller identity
comes from the X-User-Id header set by whatever authenticates in front of
this service; routes that need an owner reject requests without it.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from promptrelay.backends import LLMClient
from promptrelay.catalog import ModelCatalog
from promptrelay.config import get_config, get_tunable
from promptrelay.errors import (
    AuthenticationRequired,
    NotFoundError,
    PromptRelayError,
    RateLimitExceeded,
    ValidationError,
)
from promptrelay.orchestrator import ModelOrchestrator
from promptrelay.ratelimit import RateLimiter
from promptrelay.rewriter import DEFAULT_OPTIMIZATION_TYPES, PromptRewriter
from promptrelay.session_cache import FlushPolicy, SessionContextCache
from promptrelay.storage.models import (
    ChatRequest,
    OptimizationRequest,
    sort_messages,
    validate_session_id,
)
from promptrelay.storage.session_store import SessionStore, make_session_store

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Globals, set up in lifespan()
# ---------------------------------------------------------------------------
catalog: ModelCatalog | None = None
llm_client: LLMClient | None = None
session_store: SessionStore | None = None
session_cache: SessionContextCache | None = None
orchestrator: ModelOrchestrator | None = None
rate_limiter: RateLimiter | None = None
_debug: bool = False


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        from pathlib import Path
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def init_services(cfg: dict, client=None, store: SessionStore | None = None) -> None:
    """Wire every collaborator from config. `client`/`store` override for tests."""
    global catalog, llm_client, session_store, session_cache, orchestrator
    global rate_limiter, _debug

    server_cfg = cfg.get("server", {})
    memory_cfg = cfg.get("memory", {})
    storage_cfg = cfg.get("storage", {})
    limits_cfg = cfg.get("limits", {})
    _debug = bool(server_cfg.get("debug", False))

    catalog = ModelCatalog.from_config(cfg.get("models"))
    llm_client = client or LLMClient.from_config(cfg.get("backend", {}), catalog)

    session_store = store or make_session_store(storage_cfg)
    session_cache = SessionContextCache(
        session_store,
        policy=FlushPolicy(memory_cfg.get("flush_every", 2)),
        ttl_seconds=float(memory_cfg.get("cache_ttl_seconds", 1800)),
    )

    optimization_types = {**DEFAULT_OPTIMIZATION_TYPES, **(cfg.get("optimization_types") or {})}
    rewriter = PromptRewriter(
        llm_client, optimization_types=optimization_types, settings=cfg.get("rewriter") or {}
    )

    orchestrator = ModelOrchestrator(
        llm_client,
        catalog,
        rewriter=rewriter,
        store=session_store,
        cache=session_cache,
        strategies_cfg=cfg.get("strategies") or {},
        optimization_types=optimization_types,
        chat_cfg=cfg.get("chat") or {},
        max_context_tokens=int(memory_cfg.get("max_context_tokens", 2000)),
        max_prompt_length=int(limits_cfg.get("max_prompt_length", 5000)),
        max_messages=int(storage_cfg.get("max_messages", 100)),
        request_timeout=float(server_cfg.get("request_timeout", 120)),
    )
    rate_limiter = RateLimiter.from_config(cfg.get("rate_limits") or {})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    cfg = get_config()
    _setup_logging(cfg)
    init_services(cfg)

    logger.info(
        "promptrelay started on %s:%s, upstream %s",
        cfg.get("server", {}).get("host", "0.0.0.0"),
        cfg.get("server", {}).get("port", 8000),
        cfg.get("backend", {}).get("url", ""),
    )
    logger.info("Storage: %s", cfg.get("storage", {}).get("backend", "sqlite"))

    yield

    await session_cache.flush_all()
    logger.info("promptrelay shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="promptrelay",
    description="Prompt optimization and multi-model orchestration API",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(PromptRelayError)
async def _relay_error(request: Request, exc: PromptRelayError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(include_details=_debug), status_code=exc.status_code)


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = {"error": "INTERNAL_SERVER_ERROR", "message": "An unexpected error occurred"}
    if _debug:
        body["details"] = str(exc)
    return JSONResponse(body, status_code=500)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _json_body(request: Request, required: bool = True) -> dict:
    raw = await request.body()
    if not raw:
        if required:
            raise ValidationError("Request body is required")
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body is not valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _caller(request: Request) -> str | None:
    user_id = request.headers.get("X-User-Id", "").strip()
    return user_id or None


def _require_caller(request: Request) -> str:
    user_id = _caller(request)
    if not user_id:
        raise AuthenticationRequired("Authentication required")
    return user_id


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def _rate_subject(request: Request) -> str:
    return _caller(request) or f"ip:{_client_address(request)}"


def _enforce(subject: str, operation: str) -> None:
    if not rate_limiter.check(subject, operation):
        raise RateLimitExceeded(
            "Rate limit exceeded. Please try again later.",
            details=f"operation={operation}",
        )


def _enforce_public(request: Request) -> str:
    """Count an anonymous request against its address's hourly budget."""
    address = _client_address(request)
    if not rate_limiter.check_public(address):
        info = rate_limiter.public_info(address)
        raise RateLimitExceeded(
            "Hourly request limit reached for public access.",
            details=f"reset_at={info.reset_at.isoformat()}",
        )
    return address


def _validate_limit(limit: int) -> int:
    if limit < 1 or limit > 100:
        raise ValidationError("limit must be between 1 and 100")
    return limit


def _owned_session(session_id: str, user_id: str):
    session = session_store.get_session(validate_session_id(session_id))
    if session is None or not session.is_active or session.user_id != user_id:
        raise NotFoundError("Session not found")
    return session


# ---------------------------------------------------------------------------
# Optimization
# ---------------------------------------------------------------------------

@app.post("/api/v1/optimize")
async def optimize(request: Request):
    """Run a prompt through the selected strategy."""
    body = await _json_body(request)
    _enforce(_rate_subject(request), "optimize")

    req = OptimizationRequest.from_dict(body)
    if "strategy" not in body:
        req.strategy = get_tunable("strategies", "default", "quality")
    result = await orchestrator.process(req, user_id=_caller(request) or "anonymous")
    return JSONResponse(result.to_dict())


@app.post("/api/v1/public/optimize")
async def public_optimize(request: Request):
    """Anonymous endpoint: per-address hourly limit, no conversation memory."""
    body = await _json_body(request)
    address = _enforce_public(request)

    req = OptimizationRequest.from_dict(body)
    req.enable_memory = False
    req.session_id = None
    result = await orchestrator.process(req, user_id="anonymous")

    data = result.to_dict()
    data["rate_limit"] = rate_limiter.public_info(address).to_dict()
    return JSONResponse(data)


@app.get("/api/v1/public/rate-limit")
async def public_rate_limit(request: Request):
    return JSONResponse(rate_limiter.public_info(_client_address(request)).to_dict())


@app.get("/api/v1/rate-limit")
async def rate_limit(request: Request):
    return JSONResponse(rate_limiter.info(_rate_subject(request), "optimize").to_dict())


# ---------------------------------------------------------------------------
# Direct chat
# ---------------------------------------------------------------------------

@app.post("/api/v1/chat/send")
async def chat_send(request: Request):
    """Chat with one named model, keeping session memory."""
    user_id = _require_caller(request)
    body = await _json_body(request)
    _enforce(user_id, "chat")
    req = ChatRequest.from_dict(body)
    result = await orchestrator.chat(req, user_id=user_id)
    return JSONResponse(result.to_dict())


@app.post("/api/v1/chat/strategy")
async def chat_strategy(request: Request):
    """Chat using a named preset's model and sampling settings."""
    user_id = _require_caller(request)
    body = await _json_body(request)
    _enforce(user_id, "chat")
    message = body.get("message", "")
    preset = body.get("strategy", "default")
    if not isinstance(message, str):
        raise ValidationError("message must be a string")
    if not isinstance(preset, str):
        raise ValidationError("strategy must be a string")
    result = await orchestrator.chat_with_preset(
        message,
        preset,
        session_id=body.get("session_id") or body.get("sessionId"),
        user_id=user_id,
    )
    return JSONResponse(result.to_dict())


@app.get("/api/v1/chat/presets")
async def chat_presets():
    return JSONResponse(orchestrator.list_chat_presets())


@app.post("/api/v1/public/chat/send")
async def public_chat_send(request: Request):
    """Anonymous chat: fixed model, no memory, shares the hourly public budget."""
    body = await _json_body(request)
    message = body.get("message", "")
    if not isinstance(message, str):
        raise ValidationError("message must be a string")
    address = _enforce_public(request)
    result = await orchestrator.public_chat(message)
    logger.info("Public chat answered for %s", address)

    data = result.to_dict()
    data["rate_limit"] = rate_limiter.public_info(address).to_dict()
    return JSONResponse(data)


@app.get("/api/v1/public/chat/info")
async def public_chat_info():
    info = orchestrator.public_chat_info()
    info["rate_limit"] = {"requests": rate_limiter.public_limit, "period": "1 hour"}
    return JSONResponse(info)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@app.get("/api/v1/models")
async def list_models():
    return JSONResponse(orchestrator.list_models())


@app.get("/api/v1/strategies")
async def list_strategies():
    return JSONResponse(orchestrator.list_strategies())


@app.get("/api/v1/optimization-types")
async def list_optimization_types():
    return JSONResponse(orchestrator.list_optimization_types())


@app.post("/api/v1/test-model")
async def test_model(request: Request):
    """Send a prompt straight to one model."""
    body = await _json_body(request)
    model = body.get("model")
    prompt = body.get("prompt")
    if not isinstance(model, str) or not model:
        raise ValidationError("model is required")
    if not isinstance(prompt, str):
        raise ValidationError("prompt is required")
    _enforce(_rate_subject(request), "default")
    return JSONResponse(await orchestrator.test_model(model, prompt))


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@app.get("/api/v1/sessions")
async def list_sessions(request: Request, limit: int = 20):
    user_id = _require_caller(request)
    _validate_limit(limit)
    _enforce(user_id, "session")
    sessions = session_store.list_sessions(user_id, limit=limit)
    return JSONResponse({
        "sessions": [s.summary() for s in sessions],
        "count": len(sessions),
    })


@app.post("/api/v1/sessions")
async def create_session(request: Request):
    user_id = _require_caller(request)
    _enforce(user_id, "session")
    body = await _json_body(request, required=False)
    title = body.get("title")
    if title is not None and not isinstance(title, str):
        raise ValidationError("title must be a string")
    session = session_store.create_session(
        user_id, title=title or None, max_messages=orchestrator.max_messages
    )
    return JSONResponse(session.summary(), status_code=201)


@app.get("/api/v1/sessions/{session_id}")
async def get_session(session_id: str, request: Request):
    user_id = _require_caller(request)
    _enforce(user_id, "session")
    session = _owned_session(session_id, user_id)
    session.messages = await session_cache.get_messages(session.session_id)
    session.message_count = len(session.messages)
    return JSONResponse(session.to_dict())


@app.get("/api/v1/sessions/{session_id}/history")
async def session_history(session_id: str, request: Request, limit: int = 50):
    user_id = _require_caller(request)
    _validate_limit(limit)
    _enforce(user_id, "session")
    session = _owned_session(session_id, user_id)
    messages = sort_messages(await session_cache.get_messages(session.session_id))[-limit:]
    return JSONResponse({
        "session_id": session.session_id,
        "messages": [m.to_dict() for m in messages],
        "count": len(messages),
    })


@app.delete("/api/v1/sessions/{session_id}")
async def delete_session(session_id: str, request: Request):
    user_id = _require_caller(request)
    _enforce(user_id, "session")
    session = _owned_session(session_id, user_id)
    await session_cache.evict(session.session_id)
    session_store.deactivate(session.session_id)
    logger.info("Session %s deactivated by %s", session.session_id, user_id)
    return JSONResponse({"session_id": session.session_id, "deleted": True})


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/health")
async def health(upstream: bool = False):
    """Liveness. `?upstream=true` also reports the upstream gateway."""
    data = {
        "status": "healthy",
        "service": "promptrelay",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if upstream:
        data["upstream"] = await llm_client.upstream_status()
        if not data["upstream"]["reachable"]:
            data["status"] = "degraded"
    return JSONResponse(data)
