"""
Prompt rewriter: turns short, context-dependent questions ("what are the
benefits of it?") into self-contained ones before they reach the response
model.

Cheap heuristics decide whether a rewrite is worth an upstream call at all.
When it is, the conversation topic is pulled from recent turns (a tiny LLM
call, then a known-terms table, then the first significant word) and the
rewrite is asked for at the optimization type's temperature. Anything that
goes wrong returns the prompt unchanged: a bad rewrite is worse than none.

Tunables live in the `rewriter:` block of config.yaml and may be overridden
live from runtime_config.yaml:

    rewriter:
      max_prompt_length: 150
      max_output_length: 300
      topic_max_length: 40
      vague_patterns: [...]
"""

from __future__ import annotations

import logging
import re

from promptrelay.config import get_tunable
from promptrelay.session_cache import drop_current_turn

logger = logging.getLogger(__name__)

DEFAULT_OPTIMIZATION_TYPES: dict[str, dict] = {
    "clarity": {
        "description": "Removes ambiguity and makes the request specific",
        "temperature": 0.1,
        "directive": (
            "Rewrite the question so it is clear and specific. Resolve vague "
            "references, name the subject explicitly and keep it short."
        ),
    },
    "technical": {
        "description": "Sharpens technical and programming questions",
        "temperature": 0.3,
        "directive": (
            "Rewrite the question as a precise technical question. Name the "
            "language, tool or technology involved and the expected kind of answer."
        ),
    },
    "creative": {
        "description": "Adds tone, audience and style to creative requests",
        "temperature": 0.7,
        "directive": (
            "Rewrite the request as a clear creative brief. Mention tone, style "
            "and audience where they can be inferred."
        ),
    },
    "analytical": {
        "description": "Frames data and analysis questions with scope and criteria",
        "temperature": 0.2,
        "directive": (
            "Rewrite the question as a focused analytical question. State what "
            "is compared or measured and the depth of analysis wanted."
        ),
    },
}

# prior turns shown to the rewriter, not counting the prompt being rewritten
SESSION_CONTEXT_MESSAGES = 4

DEFAULT_VAGUE_PATTERNS: list[str] = [
    r"\b(it|this|that|they|them|those|these)\b",
    r"\bwhat are the (benefits|advantages|disadvantages|drawbacks)\b",
    r"\bpros and cons\b",
    r"\bhow does (it|this|that) work\b",
    r"\btell me more\b",
    r"^\s*explain\b",
    r"\bwhich one\b",
    r"\bwhat about\b",
    r"\bthe difference\b",
    r"^\s*\w+\s*\?\s*$",
]

# (pattern, canonical spelling)
KNOWN_TERMS: list[tuple[str, str]] = [
    (r"\bpython\b", "Python"),
    (r"\btypescript\b", "TypeScript"),
    (r"\bjavascript\b", "JavaScript"),
    (r"\bnode(\.js|js)?\b", "Node.js"),
    (r"\breact\b", "React"),
    (r"\bangular\b", "Angular"),
    (r"\bvue\b", "Vue"),
    (r"\bjava\b", "Java"),
    (r"\bc#", "C#"),
    (r"\brust\b", "Rust"),
    (r"\bgolang\b", "Go"),
    (r"\bdocker\b", "Docker"),
    (r"\bkubernetes\b|\bk8s\b", "Kubernetes"),
    (r"\bpostgres(ql)?\b", "PostgreSQL"),
    (r"\bmongodb\b", "MongoDB"),
    (r"\bredis\b", "Redis"),
    (r"\bsql\b", "SQL"),
    (r"\bgraphql\b", "GraphQL"),
    (r"\brest api\b", "REST API"),
    (r"\bfastapi\b", "FastAPI"),
    (r"\bdjango\b", "Django"),
    (r"\bflask\b", "Flask"),
    (r"\bgit\b", "Git"),
    (r"\blinux\b", "Linux"),
    (r"\baws\b", "AWS"),
    (r"\bazure\b", "Azure"),
    (r"\bmachine learning\b", "machine learning"),
    (r"\bdeep learning\b", "deep learning"),
    (r"\bneural networks?\b", "neural networks"),
]

COMMON_WORDS = {
    "about", "after", "again", "always", "answer", "anything", "because", "before",
    "being", "could", "doing", "every", "explain", "first", "going", "great", "hello",
    "maybe", "never", "other", "please", "question", "really", "right", "should",
    "something", "still", "thank", "thanks", "their", "there", "these", "thing",
    "things", "think", "those", "today", "using", "where", "which", "while", "would",
    "years", "tell", "understand", "different", "difference", "better",
    "learn", "start", "started", "without",
}

_LABEL_PREFIX = re.compile(
    r"^\s*(rewritten|optimized|improved|clarified)?\s*(question|prompt|version)\s*:\s*",
    re.IGNORECASE,
)
_QUOTES = "\"'`“”‘’"
_WORD = re.compile(r"[A-Za-z][A-Za-z0-9+#]*")


class PromptRewriter:
    def __init__(self, client, optimization_types: dict | None = None, settings: dict | None = None):
        self.client = client
        self.optimization_types = optimization_types or DEFAULT_OPTIMIZATION_TYPES
        self.settings = settings or {}

    def _setting(self, key: str, default):
        return get_tunable("rewriter", key, self.settings.get(key, default))

    # ── Heuristics ───────────────────────────────────────────────────────

    def is_vague(self, prompt: str) -> bool:
        text = prompt.strip().lower()
        patterns = self._setting("vague_patterns", DEFAULT_VAGUE_PATTERNS) or []
        for pattern in patterns:
            try:
                if re.search(pattern, text):
                    return True
            except re.error as e:
                logger.warning("Bad vague pattern %r ignored: %s", pattern, e)
        return False

    def needs_rewrite(self, prompt: str) -> bool:
        if not prompt or not prompt.strip():
            return False
        if len(prompt) > int(self._setting("max_prompt_length", 150)):
            return False
        return self.is_vague(prompt)

    # ── Topic extraction ─────────────────────────────────────────────────

    @staticmethod
    def _user_turns(context: list[dict], n: int = 3) -> list[str]:
        return [m["content"] for m in context if m.get("role") == "user" and m.get("content")][-n:]

    async def extract_topic(self, context: list[dict], model: str) -> str | None:
        """Main subject of the recent conversation, or None."""
        turns = self._user_turns(context)
        if not turns:
            return None
        max_len = int(self._setting("topic_max_length", 40))

        topic = None
        try:
            resp = await self.client.complete(
                model,
                [
                    {"role": "system", "content": (
                        "Name the main topic of this conversation in one to three "
                        "words. Reply with the topic only."
                    )},
                    {"role": "user", "content": "\n".join(turns)},
                ],
                temperature=0.0,
                max_tokens=10,
            )
            topic = self._clean_topic(resp.content)
        except Exception as e:
            logger.debug("Topic extraction call failed, using heuristics: %s", e)

        if not topic:
            topic = self.match_known_term(" ".join(turns))
        if not topic:
            topic = self.first_significant_word(" ".join(turns))
        if topic:
            topic = topic[:max_len].strip()
        return topic or None

    @staticmethod
    def _clean_topic(raw: str) -> str | None:
        topic = (raw or "").strip().strip(_QUOTES).strip().rstrip(".!").strip()
        if not topic or topic.lower() in ("none", "unknown", "n/a"):
            return None
        if len(topic.split()) > 4 or "\n" in topic:
            return None
        return topic

    @staticmethod
    def match_known_term(text: str) -> str | None:
        lowered = text.lower()
        for pattern, canonical in KNOWN_TERMS:
            if re.search(pattern, lowered):
                return canonical
        return None

    @staticmethod
    def first_significant_word(text: str) -> str | None:
        for word in _WORD.findall(text):
            if len(word) >= 5 and word.lower() not in COMMON_WORDS:
                return word
        return None

    # ── Rewrite ──────────────────────────────────────────────────────────

    def _build_messages(self, prompt: str, optimization_type: str,
                        topic: str | None, context: list[dict] | None) -> list[dict]:
        profile = self.optimization_types.get(optimization_type) or self.optimization_types["clarity"]
        instructions = [
            profile.get("directive") or DEFAULT_OPTIMIZATION_TYPES["clarity"]["directive"],
            "Return only the rewritten question, without explanations, quotes or labels.",
        ]
        if topic:
            instructions.append(
                f"The conversation is about {topic}. Make the question explicitly about {topic}."
            )
        if context:
            history = "\n".join(
                f"{m['role'].upper()}: {str(m['content'])[:300]}" for m in context
            )
            instructions.append(f"Recent conversation:\n{history}")
        return [
            {"role": "system", "content": "\n".join(instructions)},
            {"role": "user", "content": f"Rewrite this question: {prompt}"},
        ]

    def _validate(self, raw: str, topic: str | None) -> str | None:
        """Cleaned rewrite, or None when it should be discarded."""
        text = (raw or "").strip().strip(_QUOTES).strip()
        text = _LABEL_PREFIX.sub("", text, count=1).strip()
        text = text.strip(_QUOTES).strip()

        max_len = int(self._setting("max_output_length", 300))
        if len(text) < 3 or len(text) > max_len or len(text.split()) < 2:
            return None

        if topic and topic.lower() not in text.lower():
            injected = f"Regarding {topic}: {text}"
            if len(injected) <= max_len:
                text = injected
        return text

    async def rewrite(
        self,
        prompt: str,
        optimization_type: str,
        model: str,
        context: list[dict] | None = None,
    ) -> str:
        """Rewritten prompt, or the original on any failure. Never raises."""
        if not self.needs_rewrite(prompt):
            return prompt
        try:
            topic = await self.extract_topic(context, model) if context else None
            profile = self.optimization_types.get(optimization_type) or self.optimization_types["clarity"]
            resp = await self.client.complete(
                model,
                self._build_messages(prompt, optimization_type, topic, context),
                temperature=float(profile.get("temperature", 0.3)),
                max_tokens=150,
            )
            rewritten = self._validate(resp.content, topic)
        except Exception as e:
            logger.warning("Prompt rewrite failed, using original: %s", e)
            return prompt

        if not rewritten:
            logger.info("Rewrite rejected by validation, using original")
            return prompt
        logger.info("Rewrote prompt (%s): %r -> %r", optimization_type, prompt, rewritten)
        return rewritten

    async def rewrite_with_session(
        self, prompt: str, optimization_type: str, model: str, session_id: str, cache
    ) -> str:
        """rewrite() with the last few turns of the session as context."""
        context = None
        try:
            recent = await cache.get_recent_messages(session_id, SESSION_CONTEXT_MESSAGES + 1)
            recent = drop_current_turn(recent, prompt)[-SESSION_CONTEXT_MESSAGES:]
            context = [{"role": m.role, "content": m.content} for m in recent] or None
        except Exception as e:
            logger.warning("Could not read session %s for rewrite context: %s", session_id, e)
        return await self.rewrite(prompt, optimization_type, model, context)
