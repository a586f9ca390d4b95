"""
speed: one fast model, no rewrite, short answer.
"""

from __future__ import annotations

from promptrelay.catalog import Model, ModelClass
from promptrelay.storage.models import OptimizationRequest, OptimizationResponse, Strategy
from promptrelay.strategies.base import BaseStrategy

BRIEF_INSTRUCTION = "Give short, clear and direct answers."


class SpeedStrategy(BaseStrategy):
    name = Strategy.SPEED

    def fast_model(self, preferred: list[str]) -> Model:
        model = self.catalog.first_preferred(preferred, ModelClass.FAST)
        if model is None:
            model = self.catalog.cheapest(ModelClass.FAST)
        if model is None:
            model = self._pinned("default_model", "gpt-4o-mini")
        return self._require(model, "the speed strategy")

    async def execute(self, request: OptimizationRequest) -> OptimizationResponse:
        model = self.fast_model(request.preferred_models)

        messages = [{"role": "system", "content": self.settings.get("instruction", BRIEF_INSTRUCTION)}]
        messages.extend(await self._context(request))
        messages.append({"role": "user", "content": request.prompt})

        resp = await self.client.complete(
            model.id,
            messages,
            temperature=float(self.settings.get("temperature", 0.5)),
            max_tokens=int(self.settings.get("max_tokens", 500)),
        )
        return self._response(
            request, request.prompt, resp.content, [model.id],
            {"total_tokens": resp.total_tokens},
        )
