"""Append-only store of past crop analyses.

Only two operations exist: ``insert`` and ``list_recent``.  Each insert runs
in its own session and transaction, so concurrent writers never share state
and readers only ever see committed rows.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cropscan.errors import StoreError, ValidationError
from cropscan.models.detection import CropDetection
from cropscan.services.ai.crop_analysis.contracts import AnalysisResult, CropType, Defect, Severity

logger = logging.getLogger(__name__)

_SCORE_QUANTUM = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AnalysisRecord:
    """Persisted projection of an ``AnalysisResult`` (recommendations are not kept)."""

    id: uuid.UUID
    created_at: datetime
    crop_type: CropType
    defects: tuple[Defect, ...]
    severity: Severity
    confidence_score: float
    image_url: Optional[str] = None


def _quantize_score(value: float) -> Decimal:
    return Decimal(str(value)).quantize(_SCORE_QUANTUM, rounding=ROUND_HALF_UP)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; everything we write is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: CropDetection) -> AnalysisRecord:
    return AnalysisRecord(
        id=row.id,
        created_at=_as_aware(row.created_at),
        crop_type=CropType(row.crop_type),
        defects=tuple(Defect.model_validate(d) for d in (row.defects or [])),
        severity=Severity(row.severity),
        confidence_score=float(row.confidence_score),
        image_url=row.image_url,
    )


class DetectionStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def insert(self, result: AnalysisResult) -> AnalysisRecord:
        """Persist *result* and return the stored record.

        ``id`` and ``created_at`` are assigned here and never change.
        """
        row = CropDetection(
            id=uuid.uuid4(),
            crop_type=result.crop_type.value,
            defects=[d.model_dump() for d in result.defects],
            severity=result.severity.value,
            confidence_score=_quantize_score(result.confidence_score),
            image_url=None,
            created_at=self._clock(),
        )

        db: Session = self._session_factory()
        try:
            db.add(row)
            db.commit()
            db.refresh(row)
            record = _to_record(row)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to insert crop detection", exc_info=True)
            raise StoreError(f"Failed to insert crop detection: {exc.__class__.__name__}") from exc
        finally:
            db.close()

        logger.info("Stored crop detection %s (%s, %s)", record.id, record.crop_type.value, record.severity.value)
        return record

    def list_recent(self, limit: int) -> list[AnalysisRecord]:
        """Return up to *limit* records, newest first.

        Rows sharing a ``created_at`` come back in reverse insertion order.
        """
        if limit < 1:
            raise ValidationError("invalid_limit", f"limit must be >= 1, got {limit}")

        stmt = (
            select(CropDetection)
            .order_by(desc(CropDetection.created_at), desc(CropDetection.seq))
            .limit(limit)
        )

        db: Session = self._session_factory()
        try:
            rows = db.execute(stmt).scalars().all()
            return [_to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.error("Failed to list crop detections", exc_info=True)
            raise StoreError(f"Failed to list crop detections: {exc.__class__.__name__}") from exc
        finally:
            db.close()
