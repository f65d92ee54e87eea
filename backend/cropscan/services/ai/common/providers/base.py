"""Abstract base for chat-completion transports."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ProviderResponse:
    """Immutable raw reply from a provider, before any interpretation.

    ``status_code`` is ``None`` when the request never produced an HTTP
    response (timeout, refused connection); ``error`` then names the cause.
    """

    provider: str
    status_code: Optional[int]
    text: str = ""
    body: Optional[dict[str, Any]] = None
    latency_ms: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


class BaseProvider(abc.ABC):
    """Contract that every provider transport must implement.

    ``complete`` sends one chat-completions payload and returns whatever came
    back.  It never raises for HTTP status; interpreting the reply is the
    caller's job.
    """

    name: str = "base"

    @abc.abstractmethod
    async def complete(
        self,
        payload: dict[str, Any],
        *,
        timeout_seconds: float = 30.0,
    ) -> ProviderResponse:
        """Send *payload* and return a ``ProviderResponse``."""
