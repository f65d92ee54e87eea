"""Mock provider — deterministic tool-call responses for tests and local runs."""

from __future__ import annotations

import json
import time
from typing import Any

from .base import BaseProvider, ProviderResponse

MOCK_ANALYSIS: dict[str, Any] = {
    "crop_type": "Tomato",
    "defects": [
        {
            "name": "Early Blight",
            "description": "Concentric brown lesions on older leaves",
            "affected_area": "30% of lower leaves",
        }
    ],
    "severity": "High",
    "confidence_score": 92.5,
    "recommendations": "Remove affected leaves and apply a copper-based fungicide.",
}


class MockProvider(BaseProvider):
    name = "mock"

    def __init__(self, analysis: dict[str, Any] | None = None) -> None:
        self._analysis = analysis if analysis is not None else MOCK_ANALYSIS

    async def complete(
        self,
        payload: dict[str, Any],
        *,
        timeout_seconds: float = 30.0,
    ) -> ProviderResponse:
        t0 = time.monotonic()
        tool_name = (payload.get("tool_choice") or {}).get("function", {}).get("name", "analyze_crop")
        body = {
            "id": "mock-completion",
            "model": payload.get("model") or "mock-v1",
            "choices": [
                {
                    "index": 0,
                    "finish_reason": "tool_calls",
                    "message": {
                        "role": "assistant",
                        "content": None,
                        "tool_calls": [
                            {
                                "id": "call_mock",
                                "type": "function",
                                "function": {
                                    "name": tool_name,
                                    "arguments": json.dumps(self._analysis),
                                },
                            }
                        ],
                    },
                }
            ],
            "usage": {"prompt_tokens": 0, "completion_tokens": 0},
        }
        elapsed = (time.monotonic() - t0) * 1000
        return ProviderResponse(
            provider=self.name,
            status_code=200,
            text=json.dumps(body),
            body=body,
            latency_ms=round(elapsed, 2),
        )
