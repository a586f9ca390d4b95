"""
ModelOrchestrator: the single entry point for an optimization request.

    request ─► validate ─► session prep ─► strategy.execute ─► session post
                 │              │                 │
           400 on bad     create / verify   quality | speed |
           prompt or      owner, title,     consensus | cost_effective
           strategy       log user turn

Validation happens before anything is created or called, so a bad request
costs zero upstream calls. The whole run is bounded by a deadline
(`server.request_timeout`); expiry surfaces as RequestTimeoutError.
Anything that is not already a PromptRelayError is logged and wrapped as
InternalError here, so callers only ever see the error taxonomy.

Direct chat (`chat`, `chat_with_preset`, `public_chat`) skips rewriting and
strategies: one named model answers, with the same session memory.

    chat:
      default_model: gpt-4o-mini
      context_messages: 8
      presets:
        default: {model: gpt-4o-mini, temperature: 0.7, max_tokens: 1000}
      public: {model: gpt-4o-mini, temperature: 0.7, max_tokens: 1000, max_message_length: 4000}
"""

from __future__ import annotations

import asyncio
import logging
import time

from promptrelay.catalog import ModelCatalog
from promptrelay.errors import (
    InternalError,
    NotFoundError,
    PromptRelayError,
    RequestTimeoutError,
    ValidationError,
)
from promptrelay.rewriter import DEFAULT_OPTIMIZATION_TYPES
from promptrelay.storage.models import (
    ChatRequest,
    ChatResponse,
    ConversationMessage,
    OptimizationRequest,
    OptimizationResponse,
    OptimizationType,
    Strategy,
    validate_session_id,
)
from promptrelay.strategies import STRATEGY_CLASSES, BaseStrategy
from promptrelay.titles import KeywordTitleGenerator, TitleGenerator

logger = logging.getLogger(__name__)

STRATEGY_INFO: dict[Strategy, dict] = {
    Strategy.QUALITY: {
        "description": "Rewrites the prompt, then answers with an advanced model",
        "estimated_time": "10-20s",
    },
    Strategy.SPEED: {
        "description": "Single fast model with a short, direct answer",
        "estimated_time": "2-5s",
    },
    Strategy.CONSENSUS: {
        "description": "Several models answer in parallel and the answers are merged",
        "estimated_time": "15-30s",
    },
    Strategy.COST_EFFECTIVE: {
        "description": "Cheapest enabled model answers the prompt as-is",
        "estimated_time": "5-10s",
    },
}

DEFAULT_CHAT_PRESETS: dict[str, dict] = {
    "default": {"model": "gpt-4o-mini", "temperature": 0.7, "max_tokens": 1000},
    "precise": {"model": "gpt-4o", "temperature": 0.2, "max_tokens": 1000},
    "creative": {"model": "gpt-4o", "temperature": 0.9, "max_tokens": 1500},
    "reasoning": {"model": "o3-mini", "temperature": 0.3, "max_tokens": 2000},
}

DEFAULT_PUBLIC_CHAT: dict = {
    "model": "gpt-4o-mini",
    "temperature": 0.7,
    "max_tokens": 1000,
    "max_message_length": 4000,
}


class ModelOrchestrator:
    def __init__(
        self,
        client,
        catalog: ModelCatalog,
        rewriter=None,
        store=None,
        cache=None,
        title_generator: TitleGenerator | None = None,
        strategies_cfg: dict | None = None,
        optimization_types: dict | None = None,
        chat_cfg: dict | None = None,
        max_context_tokens: int = 2000,
        max_prompt_length: int = 5000,
        max_messages: int = 100,
        request_timeout: float = 120,
    ):
        self.client = client
        self.catalog = catalog
        self.rewriter = rewriter
        self.store = store
        self.cache = cache
        self.title_generator = title_generator or KeywordTitleGenerator()
        self.optimization_types = optimization_types or DEFAULT_OPTIMIZATION_TYPES
        self.max_context_tokens = max_context_tokens
        self.max_prompt_length = max_prompt_length
        self.max_messages = max_messages
        self.request_timeout = request_timeout

        chat_cfg = chat_cfg or {}
        self.chat_default_model = chat_cfg.get("default_model", "gpt-4o-mini")
        self.chat_context_messages = int(chat_cfg.get("context_messages", 8))
        self.chat_presets = {**DEFAULT_CHAT_PRESETS, **(chat_cfg.get("presets") or {})}
        self.public_chat_cfg = {**DEFAULT_PUBLIC_CHAT, **(chat_cfg.get("public") or {})}

        strategies_cfg = strategies_cfg or {}
        self.strategies: dict[Strategy, BaseStrategy] = {
            key: cls(
                client,
                catalog,
                rewriter=rewriter,
                cache=cache,
                settings=strategies_cfg.get(key.value) or {},
                max_context_tokens=max_context_tokens,
            )
            for key, cls in STRATEGY_CLASSES.items()
        }

    @property
    def memory_available(self) -> bool:
        return self.store is not None and self.cache is not None

    # ── Public entry point ───────────────────────────────────────────────

    async def process(
        self,
        request: OptimizationRequest,
        user_id: str = "anonymous",
        timeout: float | None = None,
    ) -> OptimizationResponse:
        strategy = self.validate(request)
        return await self._bounded(
            self._run(request, strategy, user_id or "anonymous"),
            timeout,
            f"strategy={strategy.value}",
        )

    def validate(self, request: OptimizationRequest) -> Strategy:
        self._check_text(request.prompt, "Prompt", self.max_prompt_length)
        strategy = Strategy.parse(request.strategy)
        request.optimization_type = OptimizationType.resolve(
            request.optimization_type, self.optimization_types
        )
        if request.enable_memory and request.session_id is not None:
            validate_session_id(request.session_id)
        return strategy

    async def _bounded(self, coro, timeout: float | None, label: str):
        """Run under the request deadline and map failures to the error taxonomy."""
        deadline = timeout or self.request_timeout
        try:
            return await asyncio.wait_for(coro, timeout=deadline)
        except PromptRelayError:
            raise
        except asyncio.TimeoutError:
            logger.warning("Request exceeded %.0fs deadline (%s)", deadline, label)
            raise RequestTimeoutError(f"Request timed out after {deadline:.0f}s")
        except Exception as e:
            logger.exception("Unexpected error while processing request")
            raise InternalError("An unexpected error occurred", details=str(e)) from e

    @staticmethod
    def _check_text(text, what: str, max_length: int) -> None:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError(f"{what} cannot be empty")
        if len(text) > max_length:
            raise ValidationError(
                f"{what} is too long ({len(text)} characters, max {max_length})"
            )

    # ── Pipeline ─────────────────────────────────────────────────────────

    async def _run(
        self, request: OptimizationRequest, strategy: Strategy, user_id: str
    ) -> OptimizationResponse:
        t0 = time.monotonic()
        memory = bool(request.enable_memory) and self.memory_available
        if memory:
            request.session_id, _, _ = await self._prepare_session(
                request.session_id, request.prompt, user_id
            )
        else:
            request.session_id = None

        response = await self.strategies[strategy].execute(request)

        if memory:
            await self._log_answer(
                request.session_id,
                response.final_response,
                response.models_used[-1] if response.models_used else None,
            )
            response.metadata["session_id"] = request.session_id

        response.processing_time_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "Processed %s request in %.0fms using %s",
            strategy.value, response.processing_time_ms, ", ".join(response.models_used),
        )
        return response

    async def _prepare_session(
        self, session_id: str | None, prompt: str, user_id: str
    ) -> tuple[str, str | None, bool]:
        """
        Create or verify the caller's session, title it if untitled and log
        the user turn. Returns (session_id, new_title, created).
        """
        created = not session_id
        if created:
            session = self.store.create_session(user_id, max_messages=self.max_messages)
            logger.info("Created session %s for %s", session.session_id, user_id)
        else:
            session = self.store.get_session(session_id)
            if session is None or not session.is_active or session.user_id != user_id:
                raise NotFoundError(f"Session '{session_id}' not found")

        title = None
        if not session.title:
            title = self.title_generator.generate_title(prompt)
            self.store.update_title(session.session_id, title)

        await self.cache.append_message(
            session.session_id, ConversationMessage(role="user", content=prompt)
        )
        return session.session_id, title, created

    async def _log_answer(self, session_id: str, content: str, model: str | None) -> None:
        await self.cache.append_message(
            session_id, ConversationMessage(role="assistant", content=content, model=model)
        )

    # ── Direct chat ──────────────────────────────────────────────────────

    async def chat(
        self,
        request: ChatRequest,
        user_id: str = "anonymous",
        memory: bool = True,
        timeout: float | None = None,
        max_length: int | None = None,
    ) -> ChatResponse:
        """One named model answers the message, with session memory when enabled."""
        self._check_text(request.message, "Message", max_length or self.max_prompt_length)
        request.model = request.model or self.chat_default_model
        if not self.catalog.is_enabled(request.model):
            raise ValidationError(f"Model '{request.model}' is not available")
        memory = memory and self.memory_available
        if memory and request.session_id is not None:
            validate_session_id(request.session_id)
        return await self._bounded(
            self._chat(request, user_id or "anonymous", memory),
            timeout,
            f"chat model={request.model}",
        )

    async def chat_with_preset(
        self,
        message: str,
        preset: str = "default",
        session_id: str | None = None,
        user_id: str = "anonymous",
    ) -> ChatResponse:
        """Chat with the model and sampling settings of a named preset."""
        name = (preset or "default").strip().lower()
        settings = self.chat_presets.get(name)
        if settings is None:
            logger.info("Unknown chat preset '%s', using default", preset)
            settings = self.chat_presets["default"]
        request = ChatRequest(
            message=message,
            model=settings.get("model"),
            session_id=session_id,
            temperature=float(settings.get("temperature", 0.7)),
            max_tokens=settings.get("max_tokens"),
        )
        return await self.chat(request, user_id=user_id)

    async def public_chat(self, message: str) -> ChatResponse:
        """Anonymous chat: fixed model and settings, no memory."""
        cfg = self.public_chat_cfg
        request = ChatRequest(
            message=message,
            model=cfg["model"],
            temperature=float(cfg["temperature"]),
            max_tokens=cfg.get("max_tokens"),
        )
        return await self.chat(
            request, memory=False, max_length=int(cfg["max_message_length"])
        )

    def public_chat_info(self) -> dict:
        cfg = self.public_chat_cfg
        return {
            "description": "Public chat: no authentication, no session memory",
            "model": cfg["model"],
            "features": {
                "authentication": False,
                "session_memory": False,
                "temperature": cfg["temperature"],
                "max_tokens": cfg.get("max_tokens"),
            },
            "limits": {"max_message_length": cfg["max_message_length"]},
        }

    async def _chat(self, request: ChatRequest, user_id: str, memory: bool) -> ChatResponse:
        t0 = time.monotonic()
        title, created = None, False
        messages: list[dict] = []
        if memory:
            request.session_id, title, created = await self._prepare_session(
                request.session_id, request.message, user_id
            )
            messages = await self.cache.get_budgeted_context(
                request.session_id,
                self.max_context_tokens,
                window=self.chat_context_messages,
                exclude_prompt=request.message,
            )
        else:
            request.session_id = None
        messages.append({"role": "user", "content": request.message})

        resp = await self.client.complete(
            request.model,
            messages,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )
        if memory:
            await self._log_answer(request.session_id, resp.content, request.model)

        logger.info(
            "Chat answered by %s in %.0fms (%d context messages)",
            request.model, (time.monotonic() - t0) * 1000, len(messages) - 1,
        )
        return ChatResponse(
            message=resp.content,
            model=request.model,
            session_id=request.session_id,
            session_title=title,
            is_new_session=created,
            usage=resp.usage,
        )

    # ── Descriptive endpoints ────────────────────────────────────────────

    def list_models(self) -> dict:
        return self.catalog.to_dict()

    def list_strategies(self) -> list[dict]:
        return [
            {"name": s.value, **STRATEGY_INFO[s]}
            for s in Strategy
        ]

    def list_optimization_types(self) -> list[dict]:
        return [
            {"name": name, "description": profile.get("description", "")}
            for name, profile in self.optimization_types.items()
        ]

    def list_chat_presets(self) -> list[dict]:
        return [{"name": name, **settings} for name, settings in self.chat_presets.items()]

    async def test_model(self, model: str, prompt: str) -> dict:
        """Send one prompt to one model, bypassing strategies and sessions."""
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")
        if not self.catalog.is_enabled(model):
            raise ValidationError(f"Model '{model}' is not available")
        resp = await self.client.complete(model, [{"role": "user", "content": prompt}])
        return {
            "model": model,
            "response": resp.content,
            "usage": resp.usage,
            "latency_ms": round(resp.latency_ms, 1),
        }
