"""AI audit — one structured log line per provider call."""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Optional

from .providers.base import ProviderResponse

logger = logging.getLogger("cropscan.ai.audit")

# Scope-dependent audit actions. Falls back to "AI_RUN" for unknown scopes.
SCOPE_ACTIONS: dict[str, str] = {
    "crop_analysis": "AI_CROP_ANALYZED",
}

_MAX_LOGGED_BODY_CHARS = 2000


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def build_audit_record(
    *,
    scope: str,
    model: str,
    response: ProviderResponse,
    prompt_text: str,
    outcome: str,
    store_raw: bool = False,
    extra_meta: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Collect the audit fields for one call.

    The prompt and response are always hashed; raw text is only included
    when ``store_raw`` is set (``AI_DEBUG_STORE_RAW=true``).
    """
    usage = response.body.get("usage") if isinstance(response.body, dict) else None
    if not isinstance(usage, dict):
        usage = {}

    record: dict[str, Any] = {
        "action": SCOPE_ACTIONS.get(scope, "AI_RUN"),
        "scope": scope,
        "provider": response.provider,
        "model": model,
        "status_code": response.status_code,
        "outcome": outcome,
        "prompt_tokens": usage.get("prompt_tokens", 0),
        "completion_tokens": usage.get("completion_tokens", 0),
        "latency_ms": response.latency_ms,
        "prompt_hash": _sha256(prompt_text),
        "response_hash": _sha256(response.text),
    }

    if store_raw:
        record["prompt_raw"] = prompt_text
        record["response_raw"] = response.text[:_MAX_LOGGED_BODY_CHARS]

    if extra_meta:
        record.update(extra_meta)

    return record


def log_ai_run(
    *,
    scope: str,
    model: str,
    response: ProviderResponse,
    prompt_text: str,
    outcome: str,
    store_raw: bool = False,
    extra_meta: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Write the audit line and return the logged fields."""
    record = build_audit_record(
        scope=scope,
        model=model,
        response=response,
        prompt_text=prompt_text,
        outcome=outcome,
        store_raw=store_raw,
        extra_meta=extra_meta,
    )
    level = logging.INFO if outcome == "ok" else logging.WARNING
    logger.log(
        level,
        "%s provider=%s model=%s status=%s outcome=%s latency_ms=%s",
        record["action"],
        record["provider"],
        record["model"],
        record["status_code"],
        outcome,
        record["latency_ms"],
        extra={"ai_audit": record},
    )
    return record
