"""AI Router — turns settings into an explicit gateway configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from cropscan.core.config import Settings

from .providers import BaseProvider, get_provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayConfig:
    """Everything a gateway needs, resolved once at construction time."""

    api_key: str
    model: str
    base_url: str
    timeout_seconds: float
    max_tokens: Optional[int] = None
    provider_name: str = "gateway"
    debug_store_raw: bool = False

    @property
    def has_credential(self) -> bool:
        # The mock transport talks to nobody and needs no key.
        return self.provider_name == "mock" or bool(self.api_key)


def resolve(settings: Settings) -> GatewayConfig:
    """Build a ``GatewayConfig`` from *settings*.

    The API key may be empty; the gateway turns that into ``ConfigError``
    on the first call instead of failing application startup.
    """
    timeout = settings.ai_timeout_seconds
    if timeout <= 0:
        logger.warning("AI_TIMEOUT_SECONDS=%r is not positive; using 30s", timeout)
        timeout = 30.0

    return GatewayConfig(
        api_key=settings.ai_gateway_api_key.strip(),
        model=settings.ai_model.strip(),
        base_url=settings.ai_gateway_url,
        timeout_seconds=timeout,
        max_tokens=settings.ai_max_tokens,
        provider_name=settings.ai_provider or "gateway",
        debug_store_raw=settings.ai_debug_store_raw,
    )


def build_provider(config: GatewayConfig) -> BaseProvider:
    return get_provider(config.provider_name, api_key=config.api_key, base_url=config.base_url)
