"""
OpenAI-compatible chat completions backend.

Talks to any gateway that implements POST {url}/chat/completions and
GET {url}/models with bearer auth (the hosted aggregator promptrelay fronts,
vLLM, llama.cpp server, LocalAI, ...).
"""

from __future__ import annotations

import logging
import time

import httpx

from promptrelay.backends.base import NO_RESPONSE, BaseBackend, BackendResponse

logger = logging.getLogger(__name__)


class OpenAICompatibleBackend(BaseBackend):
    """Backend for an OpenAI-compatible endpoint."""

    def __init__(
        self,
        name: str,
        url: str,
        timeout: int = 30,
        api_key: str = "",
    ):
        super().__init__(name, url, timeout)
        self.api_key = api_key

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def forward(self, body: dict, timeout: float | None = None) -> BackendResponse:
        """Forward a non-streaming request."""
        model = body.get("model", "")
        limit = timeout or self.timeout
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=limit) as client:
                resp = await client.post(
                    f"{self.url}/chat/completions",
                    json=body,
                    headers=self._headers(),
                )
                latency = (time.monotonic() - t0) * 1000

                if resp.status_code >= 400:
                    return BackendResponse(
                        ok=False,
                        status_code=resp.status_code,
                        backend_name=self.name,
                        model=model,
                        latency_ms=latency,
                        error=f"HTTP {resp.status_code}: {resp.text[:200]}",
                    )

                data = resp.json()
                return BackendResponse(
                    ok=True,
                    status_code=resp.status_code,
                    data=data if isinstance(data, dict) else {},
                    backend_name=self.name,
                    model=model,
                    latency_ms=latency,
                )
        except httpx.TimeoutException:
            latency = (time.monotonic() - t0) * 1000
            logger.warning(
                "Backend '%s' timed out for model '%s' after %.0fms",
                self.name, model, latency,
            )
            return BackendResponse(
                ok=False,
                status_code=NO_RESPONSE,
                backend_name=self.name,
                model=model,
                latency_ms=latency,
                error=f"Timeout after {limit}s",
            )
        except (httpx.HTTPError, ValueError) as e:
            # Connection errors and undecodable bodies
            latency = (time.monotonic() - t0) * 1000
            logger.warning(
                "Backend '%s' failed for model '%s': %s", self.name, model, e
            )
            return BackendResponse(
                ok=False,
                status_code=NO_RESPONSE,
                backend_name=self.name,
                model=model,
                latency_ms=latency,
                error=str(e) or e.__class__.__name__,
            )

    async def health_check(self) -> bool:
        """Check endpoint is reachable."""
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(f"{self.url}/models", headers=self._headers())
                return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def list_models(self) -> list[str]:
        """Fetch available models from endpoint."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(f"{self.url}/models", headers=self._headers())
                resp.raise_for_status()
                data = resp.json()
                models = [
                    m.get("id", m.get("name", ""))
                    for m in data.get("data", [])
                ]
                return [m for m in models if m]
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to list models from '%s': %s", self.name, e)
            return []
