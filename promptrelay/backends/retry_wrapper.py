"""
Retry wrapper for backends with exponential backoff.

This is the only retry policy in promptrelay. Strategies and the
orchestrator never retry on their own.

Retried (transient):
- 0:   no response (timeout, connection refused/reset)
- 404: model loading / not routed yet
- 408, 429: upstream timeout, rate limited
- 5xx: server errors

Never retried (permanent):
- 400: bad request
- 401, 403: auth/permission errors
"""

from __future__ import annotations

import asyncio
import logging

from promptrelay.backends.base import NO_RESPONSE, BaseBackend, BackendResponse

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {NO_RESPONSE, 404, 408, 429}


class RetryableBackendWrapper:
    """
    Wraps any backend with exponential backoff retry logic.
    max_retries=2 means three attempts in total.
    """

    def __init__(
        self,
        backend: BaseBackend,
        max_retries: int = 2,
        backoff_base: float = 1.5,
        backoff_max: float = 10.0,
    ):
        self.backend = backend
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

        self.name = backend.name
        self.url = backend.url
        self.timeout = backend.timeout

    @staticmethod
    def _is_retryable(status_code: int) -> bool:
        return status_code in RETRYABLE_STATUS or status_code >= 500

    def _backoff_seconds(self, attempt: int) -> float:
        """Backoff before retry N (1-based), exponential and capped."""
        return min(self.backoff_base ** attempt, self.backoff_max)

    async def forward(self, body: dict, timeout: float | None = None) -> BackendResponse:
        """Forward with retry on transient errors. Cancellation propagates."""
        model = body.get("model", "")
        response = BackendResponse(ok=False, backend_name=self.name, model=model,
                                   error="No attempt made")

        for attempt in range(self.max_retries + 1):
            response = await self.backend.forward(body, timeout=timeout)

            if response.ok:
                return response

            if not self._is_retryable(response.status_code):
                logger.debug(
                    "Backend '%s' returned non-retryable %d for '%s': %s",
                    self.name, response.status_code, model, response.error,
                )
                return response

            if attempt < self.max_retries:
                backoff = self._backoff_seconds(attempt + 1)
                logger.warning(
                    "Backend '%s' transient %d for '%s', retry in %.1fs (%d/%d)",
                    self.name, response.status_code, model, backoff,
                    attempt + 1, self.max_retries,
                )
                await asyncio.sleep(backoff)
                continue

            logger.error(
                "Backend '%s' exhausted retries for '%s' (last: %s)",
                self.name, model, response.error,
            )

        return response

    async def health_check(self) -> bool:
        return await self.backend.health_check()

    async def list_models(self) -> list[str]:
        return await self.backend.list_models()
