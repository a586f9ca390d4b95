"""
consensus: ask a fixed panel concurrently, then merge the answers.

Panel members run in parallel and all of them are awaited. Failed or empty
answers are dropped; if none survive there is no synthesis call.

    strategies:
      consensus:
        panel: [gpt-4o-mini, o3-mini, grok-3-mini-beta]
        synthesis_model: gpt-4o-mini
"""

from __future__ import annotations

import asyncio
import logging

from promptrelay.errors import UpstreamError
from promptrelay.storage.models import OptimizationRequest, OptimizationResponse, Strategy
from promptrelay.strategies.base import BaseStrategy

logger = logging.getLogger(__name__)

DEFAULT_PANEL = ["gpt-4o-mini", "o3-mini", "grok-3-mini-beta"]


class ConsensusStrategy(BaseStrategy):
    name = Strategy.CONSENSUS

    def panel(self) -> list[str]:
        """Configured panel minus disabled models, in configured order."""
        configured = self.settings.get("panel") or DEFAULT_PANEL
        return [m for m in configured if self.catalog.is_enabled(m)]

    async def _ask(self, model: str, prompt: str) -> str:
        resp = await self.client.complete(
            model,
            [{"role": "user", "content": prompt}],
            temperature=float(self.settings.get("temperature", 0.7)),
            max_tokens=int(self.settings.get("max_tokens", 500)),
        )
        return resp.content

    @staticmethod
    def synthesis_prompt(answers: list[tuple[str, str]]) -> str:
        parts = [
            f"Answer from model {i}:\n{text}"
            for i, (_, text) in enumerate(answers, 1)
        ]
        return (
            f"Analyze the answers below from {len(answers)} different AI models and "
            "combine their best parts into one comprehensive answer.\n\n"
            + "\n\n".join(parts)
            + "\n\nThe combined answer must be clear, consistent and keep the "
            "strengths of every model."
        )

    async def execute(self, request: OptimizationRequest) -> OptimizationResponse:
        panel = self.panel()
        if not panel:
            raise UpstreamError("No enabled models in the consensus panel")
        logger.info("Consensus: querying %s", ", ".join(panel))

        results = await asyncio.gather(
            *(self._ask(m, request.prompt) for m in panel),
            return_exceptions=True,
        )

        answers: list[tuple[str, str]] = []
        failed: list[str] = []
        for model, result in zip(panel, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Consensus member %s failed: %s", model, result)
                failed.append(model)
            elif result and result.strip():
                answers.append((model, result))
            else:
                failed.append(model)

        if not answers:
            raise UpstreamError(
                f"No valid responses from consensus models ({', '.join(failed)})",
                model=failed[0] if failed else None,
            )

        synthesis_model = self.settings.get("synthesis_model", "gpt-4o-mini")
        logger.info("Consensus: synthesizing %d answers with %s", len(answers), synthesis_model)
        resp = await self.client.complete(
            synthesis_model,
            [{"role": "user", "content": self.synthesis_prompt(answers)}],
            temperature=float(self.settings.get("synthesis_temperature", 0.3)),
            max_tokens=int(self.settings.get("synthesis_max_tokens", 1000)),
        )

        return self._response(
            request,
            request.prompt,
            resp.content,
            panel + [synthesis_model],
            {
                "consensus_count": len(panel),
                "valid_responses": len(answers),
                "failed_models": failed,
                "synthesis_model": synthesis_model,
            },
        )
