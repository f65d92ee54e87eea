"""Crop analysis gateway.

Sends one photo to a vision-language model with a forced ``analyze_crop``
tool call and turns the reply into an ``AnalysisResult`` or exactly one
error kind from ``cropscan.errors``.

Features:
- Credential injected at construction (``GatewayConfig``), checked per call
- Schema-forced output: tools + tool_choice, never free-form text
- Distinct errors for 429 / 402 / other HTTP failures
- Single attempt; retry policy belongs to the caller
- Every failure logged with status and body before it is raised
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from cropscan.core.image_intake import EncodedImage
from cropscan.errors import (
    ConfigError,
    CropScanError,
    EmptyResultError,
    MalformedResultError,
    QuotaError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)

from ..common.audit import log_ai_run
from ..common.providers.base import BaseProvider, ProviderResponse
from ..common.router import GatewayConfig, build_provider
from .contracts import (
    ANALYZE_CROP_TOOL_NAME,
    AnalysisResult,
    analyze_crop_tool,
    analyze_crop_tool_choice,
)

logger = logging.getLogger(__name__)

SCOPE = "crop_analysis"

CROP_ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert agricultural AI system specialized in detecting crop defects.\n"
    "Analyze images of crops from these 5 categories: Wheat, Rice, Corn, Tomato, Potato.\n\n"
    "For each image, identify:\n"
    "1. The crop type\n"
    "2. Any defects present (disease, pest damage, nutrient deficiency, physical damage, etc.)\n"
    "3. Severity level (Low, Medium, High, Critical)\n"
    "4. Confidence score (0-100)\n\n"
    "Report the result by calling the analyze_crop function. For each defect give a name, "
    "a brief description and the affected area (percentage or location). "
    "Include brief treatment recommendations."
)

CROP_ANALYSIS_USER_PROMPT = "Analyze this crop image for defects and identify the crop type."

_MAX_LOGGED_BODY_CHARS = 2000


def build_request_payload(
    image: EncodedImage,
    *,
    model: str,
    max_tokens: Optional[int] = None,
) -> dict[str, Any]:
    """Chat-completions body for one analysis: system + user message, forced tool."""
    payload: dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": CROP_ANALYSIS_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": CROP_ANALYSIS_USER_PROMPT},
                    {"type": "image_url", "image_url": {"url": image.data_uri}},
                ],
            },
        ],
        "tools": [analyze_crop_tool()],
        "tool_choice": analyze_crop_tool_choice(),
    }
    if max_tokens:
        payload["max_tokens"] = max_tokens
    return payload


def _extract_tool_arguments(body: Optional[dict[str, Any]]) -> Optional[Any]:
    """Return ``choices[0].message.tool_calls[0].function.arguments`` or None."""
    if not isinstance(body, dict):
        return None
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return None
    tool_calls = message.get("tool_calls")
    if not isinstance(tool_calls, list) or not tool_calls:
        return None
    call = tool_calls[0]
    if not isinstance(call, dict):
        return None
    function = call.get("function")
    if not isinstance(function, dict):
        return None
    name = function.get("name")
    if name and name != ANALYZE_CROP_TOOL_NAME:
        logger.warning("Model called unexpected tool %r", name)
        return None
    return function.get("arguments")


def parse_analysis(arguments: Any) -> AnalysisResult:
    """Decode tool arguments into an ``AnalysisResult`` or raise ``MalformedResultError``."""
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except (json.JSONDecodeError, ValueError) as exc:
            raise MalformedResultError(
                f"Tool arguments are not valid JSON: {exc}",
                body=str(arguments)[:_MAX_LOGGED_BODY_CHARS],
            ) from exc

    if not isinstance(arguments, dict):
        raise MalformedResultError(
            f"Tool arguments must be an object, got {type(arguments).__name__}",
            body=str(arguments)[:_MAX_LOGGED_BODY_CHARS],
        )

    try:
        return AnalysisResult.model_validate(arguments)
    except PydanticValidationError as exc:
        raise MalformedResultError(
            f"Tool arguments do not match the analyze_crop schema: {exc.error_count()} error(s)",
            body=json.dumps(arguments)[:_MAX_LOGGED_BODY_CHARS],
        ) from exc


class CropAnalysisGateway:
    """Stateless adapter between an encoded image and the model provider."""

    def __init__(self, config: GatewayConfig, provider: Optional[BaseProvider] = None) -> None:
        self._config = config
        self._provider = provider

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def _get_provider(self) -> BaseProvider:
        if self._provider is None:
            self._provider = build_provider(self._config)
        return self._provider

    async def analyze(self, image: Optional[EncodedImage]) -> AnalysisResult:
        """Classify one crop photo.

        Raises ``ConfigError``, ``ValidationError``, ``RateLimitError``,
        ``QuotaError``, ``UpstreamError``, ``EmptyResultError`` or
        ``MalformedResultError``.
        """
        if not self._config.has_credential:
            logger.error("Crop analysis called without AI_GATEWAY_API_KEY configured")
            raise ConfigError("AI gateway API key is not configured")

        if image is None or not image.data_uri:
            raise ValidationError("missing_image", "Image is required")

        payload = build_request_payload(
            image,
            model=self._config.model,
            max_tokens=self._config.max_tokens,
        )
        prompt_text = f"{CROP_ANALYSIS_SYSTEM_PROMPT}\n\n{CROP_ANALYSIS_USER_PROMPT}"

        logger.info("Analyzing crop image (%s, %d bytes)", image.mime_type, image.size_bytes)
        response = await self._get_provider().complete(
            payload,
            timeout_seconds=self._config.timeout_seconds,
        )

        try:
            result = self._normalize(response)
        except CropScanError as exc:
            log_ai_run(
                scope=SCOPE,
                model=self._config.model,
                response=response,
                prompt_text=prompt_text,
                outcome=exc.kind,
                store_raw=self._config.debug_store_raw,
            )
            raise

        log_ai_run(
            scope=SCOPE,
            model=self._config.model,
            response=response,
            prompt_text=prompt_text,
            outcome="ok",
            store_raw=self._config.debug_store_raw,
            extra_meta={
                "crop_type": result.crop_type.value,
                "severity": result.severity.value,
                "defect_count": len(result.defects),
            },
        )
        return result

    def _normalize(self, response: ProviderResponse) -> AnalysisResult:
        body_excerpt = response.text[:_MAX_LOGGED_BODY_CHARS]

        if response.status_code is None:
            logger.error("AI gateway unreachable: %s", response.error)
            raise UpstreamError(response.error or "AI gateway unreachable")

        if response.status_code == 429:
            logger.warning("AI gateway rate limited the request: %s", body_excerpt)
            raise RateLimitError("AI gateway rate limit exceeded")

        if response.status_code == 402:
            logger.warning("AI gateway reports payment required: %s", body_excerpt)
            raise QuotaError("AI gateway credits exhausted")

        if not response.ok:
            logger.error("AI gateway error: %s %s", response.status_code, body_excerpt)
            raise UpstreamError(
                f"AI gateway returned HTTP {response.status_code}",
                status=response.status_code,
                body=body_excerpt,
            )

        arguments = _extract_tool_arguments(response.body)
        if arguments is None:
            logger.error("No analyze_crop tool call in AI response: %s", body_excerpt)
            raise EmptyResultError(
                "No analysis result from AI",
                status=response.status_code,
                body=body_excerpt,
            )

        try:
            return parse_analysis(arguments)
        except MalformedResultError as exc:
            exc.status = response.status_code
            logger.error("Malformed analyze_crop arguments: %s body=%s", exc.message, exc.body)
            raise
