import httpx
import pytest
import pytest_asyncio

from cropscan.core.config import get_settings
from cropscan.services.ai.common.providers.mock import MOCK_ANALYSIS


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance (e.g. with a different API key) across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def analysis_payload() -> dict:
    """A valid ``analyze_crop`` argument object."""
    return dict(MOCK_ANALYSIS)


def tool_call_body(arguments) -> dict:
    """Chat-completions body carrying one ``analyze_crop`` tool call."""
    return {
        "choices": [
            {
                "message": {
                    "role": "assistant",
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "analyze_crop", "arguments": arguments},
                        }
                    ],
                }
            }
        ],
        "usage": {"prompt_tokens": 812, "completion_tokens": 96},
    }


@pytest_asyncio.fixture
async def client():
    """In-process ASGI client (no uvicorn needed)."""
    from cropscan.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
