"""
Model catalog: the static list of upstream LLMs promptrelay may call.

Built once at startup from the `models:` block of config.yaml and handed
to whoever needs it. Read-only after construction, safe to share across
concurrent requests.

    models:
      - id: gpt-4o-mini
        class: fast
        cost_per_k_tokens: 0.15
        priority: 1
        enabled: true
        timeout: 30
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class ModelClass(str, Enum):
    FAST = "fast"
    BALANCED = "balanced"
    ADVANCED = "advanced"
    REASONING = "reasoning"


@dataclass(frozen=True)
class Model:
    id: str
    model_class: ModelClass
    cost_per_k_tokens: float = 0.0
    priority: int = 1
    enabled: bool = True
    timeout: int = 30
    display_name: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "class": self.model_class.value,
            "cost_per_k_tokens": self.cost_per_k_tokens,
            "priority": self.priority,
            "enabled": self.enabled,
            "timeout": self.timeout,
            "display_name": self.display_name or self.id,
        }


# Used when config.yaml has no models block
DEFAULT_MODELS: list[dict] = [
    {"id": "gpt-4o-mini", "class": "fast", "cost_per_k_tokens": 0.15, "priority": 1,
     "display_name": "GPT-4o Mini"},
    {"id": "gpt-4o", "class": "advanced", "cost_per_k_tokens": 1.0, "priority": 3,
     "display_name": "GPT-4o"},
    {"id": "gemini-lite", "class": "fast", "cost_per_k_tokens": 0.1, "priority": 1,
     "enabled": False, "display_name": "Gemini Lite"},
    {"id": "gemini", "class": "balanced", "cost_per_k_tokens": 0.5, "priority": 2,
     "enabled": False, "display_name": "Gemini"},
    {"id": "deepseek-chat", "class": "balanced", "cost_per_k_tokens": 0.3, "priority": 2,
     "timeout": 60, "display_name": "DeepSeek Chat"},
    {"id": "deepseek-r1", "class": "reasoning", "cost_per_k_tokens": 0.8, "priority": 3,
     "timeout": 60, "display_name": "DeepSeek R1"},
    {"id": "o3-mini", "class": "fast", "cost_per_k_tokens": 0.2, "priority": 1,
     "display_name": "O3 Mini"},
    {"id": "grok-2", "class": "advanced", "cost_per_k_tokens": 0.9, "priority": 3,
     "display_name": "Grok 2"},
    {"id": "grok-3-mini-beta", "class": "fast", "cost_per_k_tokens": 0.25, "priority": 1,
     "display_name": "Grok 3 Mini Beta"},
]


class ModelCatalog:
    """Immutable, ordered view over the configured models."""

    def __init__(self, models: list[Model]):
        seen: set[str] = set()
        ordered: list[Model] = []
        for m in models:
            if m.id in seen:
                logger.warning("Duplicate model id '%s' in catalog, keeping first", m.id)
                continue
            seen.add(m.id)
            ordered.append(m)
        self._models: tuple[Model, ...] = tuple(ordered)

        enabled = [m.id for m in self._models if m.enabled]
        logger.info("Model catalog: %d models (%d enabled: %s)",
                    len(self._models), len(enabled), ", ".join(enabled))

    @classmethod
    def from_config(cls, models_cfg: list[dict] | None) -> "ModelCatalog":
        """Instantiate from the `models:` config list, skipping bad entries."""
        entries = models_cfg if models_cfg else DEFAULT_MODELS
        models: list[Model] = []
        for cfg in entries:
            model = cls._create_model(cfg)
            if model:
                models.append(model)
        return cls(models)

    @staticmethod
    def _create_model(cfg: dict) -> Model | None:
        model_id = cfg.get("id", "")
        if not model_id:
            logger.warning("Model entry without id, skipping: %s", cfg)
            return None
        try:
            model_class = ModelClass(str(cfg.get("class", "balanced")).lower())
        except ValueError:
            logger.warning("Model '%s' has unknown class '%s', skipping",
                           model_id, cfg.get("class"))
            return None
        return Model(
            id=model_id,
            model_class=model_class,
            cost_per_k_tokens=float(cfg.get("cost_per_k_tokens", 0.0)),
            priority=int(cfg.get("priority", 1)),
            enabled=bool(cfg.get("enabled", True)),
            timeout=int(cfg.get("timeout", 30)),
            display_name=cfg.get("display_name", ""),
        )

    def all(self) -> list[Model]:
        return list(self._models)

    def enabled(self, model_class: ModelClass | None = None) -> list[Model]:
        """Enabled models in catalog order, optionally filtered by class."""
        return [
            m for m in self._models
            if m.enabled and (model_class is None or m.model_class == model_class)
        ]

    def get(self, model_id: str) -> Model | None:
        """Look up an enabled model by id."""
        for m in self._models:
            if m.id == model_id and m.enabled:
                return m
        return None

    def is_enabled(self, model_id: str) -> bool:
        return self.get(model_id) is not None

    def cheapest(self, model_class: ModelClass | None = None) -> Model | None:
        """
        Enabled model with the lowest cost_per_k_tokens.
        min() keeps the first of equal keys, so ties go to catalog order.
        """
        candidates = self.enabled(model_class)
        if not candidates:
            return None
        return min(candidates, key=lambda m: m.cost_per_k_tokens)

    def first_preferred(self, preferred: list[str], model_class: ModelClass) -> Model | None:
        """First preferred id that is enabled and of the requested class."""
        for model_id in preferred or []:
            m = self.get(model_id)
            if m and m.model_class == model_class:
                return m
        return None

    def timeout_for(self, model_id: str, default: int = 30) -> int:
        for m in self._models:
            if m.id == model_id:
                return m.timeout
        return default

    def to_dict(self) -> dict:
        """Enabled catalog keyed by id (GET /models)."""
        return {m.id: m.to_dict() for m in self.enabled()}

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, model_id: str) -> bool:
        return self.is_enabled(model_id)
