"""Crop analysis contracts — AnalysisResult and the forced tool schema."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CropType(str, Enum):
    WHEAT = "Wheat"
    RICE = "Rice"
    CORN = "Corn"
    TOMATO = "Tomato"
    POTATO = "Potato"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class Defect(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    affected_area: str


class AnalysisResult(BaseModel):
    """Structured output the model must return through the ``analyze_crop`` tool."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    crop_type: CropType
    defects: list[Defect]
    severity: Severity
    confidence_score: float = Field(ge=0, le=100, strict=True)
    recommendations: str


ANALYZE_CROP_TOOL_NAME = "analyze_crop"
ANALYZE_CROP_TOOL_DESCRIPTION = "Analyze crop image for type, defects, and severity"

ANALYZE_CROP_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "crop_type": {
            "type": "string",
            "enum": [c.value for c in CropType],
        },
        "defects": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "affected_area": {"type": "string"},
                },
                "required": ["name", "description", "affected_area"],
            },
        },
        "severity": {
            "type": "string",
            "enum": [s.value for s in Severity],
        },
        "confidence_score": {
            "type": "number",
            "minimum": 0,
            "maximum": 100,
        },
        "recommendations": {"type": "string"},
    },
    "required": ["crop_type", "defects", "severity", "confidence_score", "recommendations"],
}


def analyze_crop_tool() -> dict[str, Any]:
    """Tool declaration sent with every analysis request."""
    return {
        "type": "function",
        "function": {
            "name": ANALYZE_CROP_TOOL_NAME,
            "description": ANALYZE_CROP_TOOL_DESCRIPTION,
            "parameters": ANALYZE_CROP_PARAMETERS,
        },
    }


def analyze_crop_tool_choice() -> dict[str, Any]:
    """Directive forcing the model to call ``analyze_crop``."""
    return {"type": "function", "function": {"name": ANALYZE_CROP_TOOL_NAME}}
