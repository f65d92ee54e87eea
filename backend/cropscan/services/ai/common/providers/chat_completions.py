"""OpenAI-compatible chat-completions provider (Lovable AI gateway by default)."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

import httpx

from .base import BaseProvider, ProviderResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://ai.gateway.lovable.dev/v1"


class ChatCompletionsProvider(BaseProvider):
    name = "gateway"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._transport = transport

    async def complete(
        self,
        payload: dict[str, Any],
        *,
        timeout_seconds: float = 30.0,
    ) -> ProviderResponse:
        t0 = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout_seconds, transport=self._transport) as client:
                resp = await client.post(
                    self._url,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.TimeoutException as exc:
            return ProviderResponse(
                provider=self.name,
                status_code=None,
                latency_ms=_elapsed_ms(t0),
                error=f"timeout after {timeout_seconds}s: {exc!r}",
            )
        except httpx.HTTPError as exc:
            return ProviderResponse(
                provider=self.name,
                status_code=None,
                latency_ms=_elapsed_ms(t0),
                error=f"transport error: {exc!r}",
            )

        body: Optional[dict[str, Any]] = None
        try:
            decoded = resp.json()
        except (json.JSONDecodeError, ValueError):
            decoded = None
        if isinstance(decoded, dict):
            body = decoded

        return ProviderResponse(
            provider=self.name,
            status_code=resp.status_code,
            text=resp.text,
            body=body,
            latency_ms=_elapsed_ms(t0),
        )


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 2)
