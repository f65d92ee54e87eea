"""Error kinds raised across the analysis pipeline.

Each class carries a stable ``kind`` for callers to branch on, the HTTP status
the API answers with, and a ``public_message`` that is safe to show an end
user. Diagnostic detail (provider status/body) stays on the exception for logs.
"""

from __future__ import annotations

from typing import Optional


class CropScanError(Exception):
    kind: str = "error"
    status_code: int = 500
    public_message: str = "Unexpected error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.public_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.public_message}


class ValidationError(CropScanError):
    kind = "validation_error"
    status_code = 400
    public_message = "Invalid request"

    # Reasons callers may see; ``too_large`` maps to 413 at the HTTP edge.
    REASONS = frozenset(
        {
            "too_large",
            "empty",
            "unsupported_type",
            "invalid_data_uri",
            "missing_image",
            "invalid_limit",
        }
    )

    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message or reason)
        if reason == "too_large":
            self.status_code = 413

    def to_dict(self) -> dict:
        return {"error": self.kind, "reason": self.reason, "detail": self.message}


class ConfigError(CropScanError):
    kind = "config_error"
    status_code = 503
    public_message = "Analysis service is unavailable."


class RateLimitError(CropScanError):
    kind = "rate_limited"
    status_code = 429
    public_message = "Rate limit exceeded. Please try again later."


class QuotaError(CropScanError):
    kind = "quota_exceeded"
    status_code = 402
    public_message = "Payment required. Please add credits to your workspace."


class UpstreamError(CropScanError):
    kind = "upstream_error"
    status_code = 502
    public_message = "Failed to analyze image."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        self.status = status
        self.body = body
        super().__init__(message)


class EmptyResultError(UpstreamError):
    kind = "empty_result"


class MalformedResultError(UpstreamError):
    kind = "malformed_result"


class StoreError(CropScanError):
    kind = "store_error"
    status_code = 503
    public_message = "Detection history is unavailable."


class NotFoundError(CropScanError):
    kind = "not_found"
    status_code = 404
    public_message = "Not found."
