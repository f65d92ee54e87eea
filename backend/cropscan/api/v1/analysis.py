"""Crop analysis endpoints — detect, analyze upload, detection history."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from starlette.concurrency import run_in_threadpool

from cropscan.core.config import get_settings
from cropscan.core.dependencies import get_detection_store, get_gateway, optional_detection_store
from cropscan.core.image_intake import parse_data_uri, prepare
from cropscan.errors import NotFoundError, StoreError, ValidationError
from cropscan.schemas.analysis import (
    AnalyzeResponse,
    DetectionCreate,
    DetectionListResponse,
    DetectionOut,
    DetectRequest,
    ErrorResponse,
)
from cropscan.services.ai.crop_analysis.contracts import AnalysisResult
from cropscan.services.ai.crop_analysis.service import CropAnalysisGateway
from cropscan.services.detection_store import DetectionStore

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    402: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _ensure_public_read() -> None:
    if not get_settings().detections_public_read:
        raise NotFoundError("Detection history access is disabled")


def _ensure_public_insert() -> None:
    if not get_settings().detections_public_insert:
        raise NotFoundError("Detection history access is disabled")


@router.post(
    "/detect-crop-defects",
    response_model=AnalysisResult,
    responses=_ERROR_RESPONSES,
    summary="Classify a crop photo sent as a data URI",
)
async def detect_crop_defects(
    body: DetectRequest,
    gateway: CropAnalysisGateway = Depends(get_gateway),
):
    settings = get_settings()
    image = parse_data_uri(body.image, max_bytes=settings.max_image_bytes) if body.image else None
    return await gateway.analyze(image)


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses=_ERROR_RESPONSES,
    summary="Upload a crop photo, classify it and add it to the history",
)
async def analyze_upload(
    file: UploadFile = File(...),
    persist: bool = Query(default=True, description="Store the result in the detection history"),
    gateway: CropAnalysisGateway = Depends(get_gateway),
    store: Optional[DetectionStore] = Depends(optional_detection_store),
):
    settings = get_settings()
    content = await file.read()
    image = prepare(
        content,
        content_type=file.content_type,
        filename=file.filename,
        max_bytes=settings.max_image_bytes,
    )

    analysis = await gateway.analyze(image)

    if not persist or not settings.detections_public_insert:
        return AnalyzeResponse(analysis=analysis)

    if store is None:
        logger.warning("Detection history is not configured; analysis not persisted")
        return AnalyzeResponse(analysis=analysis)

    # The analysis is returned even when the history write fails.
    try:
        record = await run_in_threadpool(store.insert, analysis)
    except StoreError as exc:
        logger.warning("Analysis computed but not persisted: %s", exc.message)
        return AnalyzeResponse(analysis=analysis)

    return AnalyzeResponse(
        analysis=analysis,
        record=DetectionOut.from_record(record),
        persisted=True,
    )


@router.post(
    "/detections",
    response_model=DetectionOut,
    status_code=201,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Add an analysis to the detection history",
)
def create_detection(
    body: DetectionCreate,
    store: DetectionStore = Depends(get_detection_store),
):
    _ensure_public_insert()
    record = store.insert(body.to_result())
    return DetectionOut.from_record(record)


@router.get(
    "/detections",
    response_model=DetectionListResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Most recent detections, newest first",
)
def list_detections(
    limit: Optional[int] = Query(default=None, ge=1),
    store: DetectionStore = Depends(get_detection_store),
):
    _ensure_public_read()
    settings = get_settings()
    effective = limit if limit is not None else settings.history_default_limit
    if effective > settings.history_max_limit:
        raise ValidationError(
            "invalid_limit",
            f"limit must be <= {settings.history_max_limit}",
        )
    records = store.list_recent(effective)
    items = [DetectionOut.from_record(r) for r in records]
    return DetectionListResponse(items=items, count=len(items))
