"""Provider factory — returns the transport named by ``AI_PROVIDER``."""

from __future__ import annotations

import logging

from cropscan.errors import ConfigError

from .base import BaseProvider, ProviderResponse
from .chat_completions import DEFAULT_BASE_URL, ChatCompletionsProvider
from .mock import MockProvider

logger = logging.getLogger(__name__)

__all__ = [
    "get_provider",
    "BaseProvider",
    "ProviderResponse",
    "ChatCompletionsProvider",
    "MockProvider",
]


def get_provider(
    provider_name: str,
    *,
    api_key: str = "",
    base_url: str = DEFAULT_BASE_URL,
) -> BaseProvider:
    """Return a provider instance for *provider_name*.

    There is no fallback: an unknown name is a configuration problem.  A
    missing API key is not checked here; the gateway reports it on first use.
    """
    name = (provider_name or "").lower().strip()

    if name == "mock":
        logger.info("Using mock crop analysis provider")
        return MockProvider()

    if name in {"gateway", "lovable", "openai"}:
        return ChatCompletionsProvider(api_key=api_key, base_url=base_url)

    raise ConfigError(f"Unknown AI provider {provider_name!r}")
