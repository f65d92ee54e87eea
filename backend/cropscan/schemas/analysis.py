"""Crop analysis API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from cropscan.services.ai.crop_analysis.contracts import AnalysisResult, CropType, Defect, Severity
from cropscan.services.detection_store import AnalysisRecord


class DetectRequest(BaseModel):
    image: Optional[str] = Field(default=None, description="Image as a data:image/...;base64,... URI")


class DetectionCreate(BaseModel):
    """An analysis to add to the history; ``recommendations`` is accepted but not stored."""

    crop_type: CropType
    defects: list[Defect]
    severity: Severity
    confidence_score: float = Field(ge=0, le=100, strict=True)
    recommendations: str

    def to_result(self) -> AnalysisResult:
        return AnalysisResult(
            crop_type=self.crop_type,
            defects=self.defects,
            severity=self.severity,
            confidence_score=self.confidence_score,
            recommendations=self.recommendations,
        )


class DetectionOut(BaseModel):
    id: UUID
    crop_type: CropType
    defects: list[Defect]
    severity: Severity
    confidence_score: float
    image_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> "DetectionOut":
        return cls(
            id=record.id,
            crop_type=record.crop_type,
            defects=list(record.defects),
            severity=record.severity,
            confidence_score=record.confidence_score,
            image_url=record.image_url,
            created_at=record.created_at,
        )


class DetectionListResponse(BaseModel):
    items: list[DetectionOut]
    count: int


class AnalyzeResponse(BaseModel):
    analysis: AnalysisResult
    record: Optional[DetectionOut] = None
    persisted: bool = False


class ErrorResponse(BaseModel):
    error: str
    detail: str
    reason: Optional[str] = None
