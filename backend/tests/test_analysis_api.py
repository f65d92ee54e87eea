"""Tests for the crop analysis HTTP endpoints."""

import json
import os
import unittest
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cropscan.core.dependencies import get_detection_store, get_gateway, optional_detection_store
from cropscan.core.image_intake import prepare
from cropscan.errors import StoreError
from cropscan.main import app
from cropscan.models.detection import Base
from cropscan.services.ai.common.providers.base import BaseProvider, ProviderResponse
from cropscan.services.ai.common.providers.mock import MOCK_ANALYSIS
from cropscan.services.ai.common.router import GatewayConfig
from cropscan.services.ai.crop_analysis.service import CropAnalysisGateway
from cropscan.services.detection_store import DetectionStore
from tests.conftest import tool_call_body

JPEG = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x01" * 64


class CannedProvider(BaseProvider):
    name = "canned"

    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self.body = body
        self.text = text or (json.dumps(body) if body else "")
        self.calls = 0

    async def complete(self, payload, *, timeout_seconds=30.0):
        self.calls += 1
        return ProviderResponse(provider=self.name, status_code=self.status_code, text=self.text, body=self.body)


class FailingStore:
    def insert(self, result):
        raise StoreError("database is down")

    def list_recent(self, limit):
        raise StoreError("database is down")


class AnalysisEndpointTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.store = DetectionStore(sessionmaker(bind=self.engine))
        self.provider = CannedProvider(body=tool_call_body(json.dumps(MOCK_ANALYSIS)))
        self.api_key = "test-key"

        def override_gateway():
            config = GatewayConfig(
                api_key=self.api_key,
                model="google/gemini-2.5-flash",
                base_url="https://ai.gateway.test/v1",
                timeout_seconds=5.0,
            )
            return CropAnalysisGateway(config, provider=self.provider)

        app.dependency_overrides[get_gateway] = override_gateway
        app.dependency_overrides[get_detection_store] = lambda: self.store
        app.dependency_overrides[optional_detection_store] = lambda: self.store
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _upload(self, content=JPEG, content_type="image/jpeg", params=None):
        return self.client.post(
            "/api/v1/analyze",
            files={"file": ("leaf.jpg", content, content_type)},
            params=params or {},
        )

    # --- /detect-crop-defects ---

    def test_detect_returns_analysis(self):
        image = prepare(JPEG, content_type="image/jpeg")
        resp = self.client.post("/api/v1/detect-crop-defects", json={"image": image.data_uri})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["crop_type"], "Tomato")
        self.assertEqual(data["severity"], "High")
        self.assertEqual(data["confidence_score"], 92.5)
        self.assertEqual(data["defects"][0]["affected_area"], "30% of lower leaves")
        self.assertIn("recommendations", data)

    def test_detect_without_image_is_400(self):
        resp = self.client.post("/api/v1/detect-crop-defects", json={})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["reason"], "missing_image")
        self.assertEqual(self.provider.calls, 0)

    def test_detect_without_credential_is_503(self):
        self.api_key = ""
        image = prepare(JPEG, content_type="image/jpeg")
        resp = self.client.post("/api/v1/detect-crop-defects", json={"image": image.data_uri})
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json(), {"error": "config_error", "detail": "Analysis service is unavailable."})

    def test_detect_rate_limited_is_429(self):
        self.provider = CannedProvider(status_code=429, text='{"error": "rate limited"}')
        image = prepare(JPEG, content_type="image/jpeg")
        resp = self.client.post("/api/v1/detect-crop-defects", json={"image": image.data_uri})
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.json()["error"], "rate_limited")
        self.assertEqual(resp.json()["detail"], "Rate limit exceeded. Please try again later.")

    def test_detect_quota_is_402(self):
        self.provider = CannedProvider(status_code=402, text="no credits")
        image = prepare(JPEG, content_type="image/jpeg")
        resp = self.client.post("/api/v1/detect-crop-defects", json={"image": image.data_uri})
        self.assertEqual(resp.status_code, 402)
        self.assertEqual(resp.json()["error"], "quota_exceeded")

    def test_upstream_body_is_not_leaked(self):
        self.provider = CannedProvider(status_code=500, text="stacktrace: secret-internal-host")
        image = prepare(JPEG, content_type="image/jpeg")
        resp = self.client.post("/api/v1/detect-crop-defects", json={"image": image.data_uri})
        self.assertEqual(resp.status_code, 502)
        self.assertNotIn("secret-internal-host", resp.text)
        self.assertEqual(resp.json(), {"error": "upstream_error", "detail": "Failed to analyze image."})

    def test_empty_tool_call_is_502_with_distinct_kind(self):
        self.provider = CannedProvider(body={"choices": [{"message": {"content": "hi"}}]})
        image = prepare(JPEG, content_type="image/jpeg")
        resp = self.client.post("/api/v1/detect-crop-defects", json={"image": image.data_uri})
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["error"], "empty_result")

    # --- /analyze ---

    def test_analyze_upload_persists_result(self):
        resp = self._upload()
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertTrue(data["persisted"])
        self.assertEqual(data["analysis"]["crop_type"], "Tomato")
        self.assertEqual(data["record"]["crop_type"], "Tomato")
        self.assertIsNotNone(data["record"]["id"])
        self.assertNotIn("recommendations", data["record"])

        [stored] = self.store.list_recent(1)
        self.assertEqual(str(stored.id), data["record"]["id"])

    def test_analyze_upload_without_persist(self):
        resp = self._upload(params={"persist": "false"})
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["persisted"])
        self.assertIsNone(resp.json()["record"])
        self.assertEqual(self.store.list_recent(10), [])

    def test_store_failure_still_returns_analysis(self):
        app.dependency_overrides[optional_detection_store] = lambda: FailingStore()
        resp = self._upload()
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertFalse(data["persisted"])
        self.assertIsNone(data["record"])
        self.assertEqual(data["analysis"]["severity"], "High")

    def test_no_database_still_returns_analysis(self):
        app.dependency_overrides[optional_detection_store] = lambda: None
        resp = self._upload()
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["persisted"])

    @patch.dict(os.environ, {"MAX_IMAGE_BYTES": "32"}, clear=False)
    def test_oversized_upload_is_413(self):
        resp = self._upload(content=b"\x00" * 33)
        self.assertEqual(resp.status_code, 413)
        self.assertEqual(resp.json()["reason"], "too_large")
        self.assertEqual(self.provider.calls, 0)

    def test_non_image_upload_is_400(self):
        resp = self.client.post(
            "/api/v1/analyze",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["reason"], "unsupported_type")

    # --- /detections ---

    def test_create_and_list_detections(self):
        for crop in ("Wheat", "Corn", "Potato"):
            resp = self.client.post(
                "/api/v1/detections",
                json={**MOCK_ANALYSIS, "crop_type": crop},
            )
            self.assertEqual(resp.status_code, 201)
            self.assertEqual(resp.json()["crop_type"], crop)

        resp = self.client.get("/api/v1/detections", params={"limit": 2})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["count"], 2)
        self.assertEqual([i["crop_type"] for i in data["items"]], ["Potato", "Corn"])

    def test_list_defaults_to_ten(self):
        for _ in range(12):
            self.client.post("/api/v1/detections", json=MOCK_ANALYSIS)
        resp = self.client.get("/api/v1/detections")
        self.assertEqual(resp.json()["count"], 10)

    def test_list_limit_above_max_is_400(self):
        resp = self.client.get("/api/v1/detections", params={"limit": 1000})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["reason"], "invalid_limit")

    def test_create_detection_rejects_unknown_crop(self):
        resp = self.client.post("/api/v1/detections", json={**MOCK_ANALYSIS, "crop_type": "Barley"})
        self.assertEqual(resp.status_code, 422)

    def test_store_unavailable_is_503(self):
        app.dependency_overrides[get_detection_store] = lambda: FailingStore()
        resp = self.client.get("/api/v1/detections")
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["error"], "store_error")

    @patch.dict(os.environ, {"DETECTIONS_PUBLIC_READ": "false"}, clear=False)
    def test_public_read_can_be_disabled(self):
        resp = self.client.get("/api/v1/detections")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": "not_found", "detail": "Not found."})

    @patch.dict(os.environ, {"DETECTIONS_PUBLIC_INSERT": "false"}, clear=False)
    def test_public_insert_can_be_disabled(self):
        resp = self.client.post("/api/v1/detections", json=MOCK_ANALYSIS)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": "not_found", "detail": "Not found."})
        self.assertEqual(self.store.list_recent(10), [])

    def test_create_detection_requires_every_field(self):
        for field in ("defects", "recommendations"):
            body = {k: v for k, v in MOCK_ANALYSIS.items() if k != field}
            resp = self.client.post("/api/v1/detections", json=body)
            self.assertEqual(resp.status_code, 422, field)
        self.assertEqual(self.store.list_recent(10), [])

    def test_create_detection_rejects_string_confidence(self):
        resp = self.client.post("/api/v1/detections", json={**MOCK_ANALYSIS, "confidence_score": "85.5"})
        self.assertEqual(resp.status_code, 422)

    def test_no_update_or_delete_routes(self):
        self.assertEqual(self.client.delete("/api/v1/detections").status_code, 405)
        self.assertEqual(self.client.put("/api/v1/detections", json=MOCK_ANALYSIS).status_code, 405)


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
