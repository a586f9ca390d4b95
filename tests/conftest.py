"""
Shared fixtures: isolated config and a scripted stand-in for LLMClient.
"""

import pytest

from promptrelay import config as config_mod
from promptrelay.backends.base import BackendResponse
from promptrelay.catalog import ModelCatalog


class FakeLLMClient:
    """
    Records every complete() call and answers from a per-model script.
    A scripted Exception is raised instead of answered. Once a model's
    script runs out it answers "answer from <model>".
    """

    def __init__(self):
        self.calls: list[dict] = []
        self.replies: dict[str, list] = {}
        self.upstream = {"reachable": True, "served_models": ["gpt-4o", "gpt-4o-mini"], "missing_models": []}

    def script(self, model: str, *replies):
        self.replies.setdefault(model, []).extend(replies)

    @property
    def models_called(self) -> list[str]:
        return [c["model"] for c in self.calls]

    async def complete(self, model, messages, temperature=None, max_tokens=None):
        self.calls.append({
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        queue = self.replies.get(model)
        reply = queue.pop(0) if queue else f"answer from {model}"
        if isinstance(reply, Exception):
            raise reply
        return BackendResponse(
            ok=True,
            data={
                "choices": [{"message": {"role": "assistant", "content": reply}}],
                "usage": {"total_tokens": 7},
            },
            model=model,
            latency_ms=1.0,
        )

    async def upstream_status(self):
        return dict(self.upstream)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Empty base config and a runtime_config.yaml path inside tmp_path."""
    monkeypatch.setattr(config_mod, "_RUNTIME_CONFIG_PATH", tmp_path / "runtime_config.yaml")
    monkeypatch.setattr(config_mod, "_runtime_config", {})
    monkeypatch.setattr(config_mod, "_runtime_mtime", 0.0)
    config_mod.set_config({})
    yield tmp_path / "runtime_config.yaml"
    config_mod.set_config(None)


@pytest.fixture
def fake_client():
    return FakeLLMClient()


@pytest.fixture
def catalog():
    return ModelCatalog.from_config(None)
