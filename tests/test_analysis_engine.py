"""Unit tests for model fan-out, merging and the HTTP model client."""

import asyncio
import pytest
import httpx
from datetime import datetime

from vigil.exceptions import InferenceUnavailableError
from vigil.services.analysis_engine import (
    AnalysisEngine, AnalysisModel, Detection, HttpModelClient, merge_detections,
)
from vigil.services.stream_handler import Frame


def make_frame():
    return Frame(camera_id="CAM-01", sequence=7, captured_at=datetime(2026, 3, 1, 12, 0), data=b"\xff\xd8x\xff\xd9")


class FakeModel(AnalysisModel):
    def __init__(self, name, detections=None, error=None, delay=0.0):
        self.name = name
        self._detections = detections or []
        self._error = error
        self._delay = delay

    async def analyze(self, frame):
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise self._error
        return [Detection(d.label, d.confidence, d.bbox, self.name, dict(d.attributes)) for d in self._detections]


def det(label, confidence, bbox=(0.1, 0.1, 0.3, 0.5), **attributes):
    return Detection(label=label, confidence=confidence, bbox=bbox, source_model="?", attributes=attributes)


class TestMergeDetections:
    def test_overlapping_same_label_keeps_highest(self):
        a = Detection("person", 0.9, (0.1, 0.1, 0.3, 0.5), "objects")
        b = Detection("Person", 0.7, (0.11, 0.1, 0.31, 0.5), "faces", {"face_id": "f1"})
        merged = merge_detections([b, a], min_confidence=0.5, iou_threshold=0.5)
        assert len(merged) == 1
        assert merged[0].source_model == "objects"
        assert merged[0].attributes["face_id"] == "f1"
        assert merged[0].attributes["merged_from"] == ["faces"]

    def test_different_labels_not_merged(self):
        a = Detection("person", 0.9, (0.1, 0.1, 0.3, 0.5), "objects")
        b = Detection("car", 0.8, (0.1, 0.1, 0.3, 0.5), "objects")
        assert len(merge_detections([a, b], 0.5, 0.5)) == 2

    def test_low_confidence_dropped(self):
        assert merge_detections([Detection("car", 0.3, (0, 0, 1, 1), "objects")], 0.5, 0.5) == []

    def test_sorted_by_confidence(self):
        a = Detection("car", 0.6, (0.0, 0.0, 0.2, 0.2), "objects")
        b = Detection("person", 0.95, (0.5, 0.5, 0.7, 0.9), "objects")
        assert [d.label for d in merge_detections([a, b], 0.5, 0.5)] == ["person", "car"]


class TestAnalysisEngine:
    @pytest.mark.asyncio
    async def test_merges_results_from_all_models(self):
        engine = AnalysisEngine([
            FakeModel("objects", [det("person", 0.9), det("car", 0.8, (0.6, 0.6, 0.9, 0.9))]),
            FakeModel("faces", [det("person", 0.85)]),
            FakeModel("plates", [det("plate", 0.7, (0.7, 0.8, 0.8, 0.85), text="AB123")]),
        ], min_confidence=0.5, iou_threshold=0.5, timeout=1)

        result = await engine.analyze(make_frame())
        assert [d.label for d in result.detections] == ["person", "car", "plate"]
        assert sorted(result.models) == ["faces", "objects", "plates"]
        assert result.model_errors == {}
        assert result.primary_label == "person"
        assert result.max_confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_failed_model_is_reported_not_fatal(self):
        engine = AnalysisEngine([
            FakeModel("objects", [det("person", 0.9)]),
            FakeModel("faces", error=InferenceUnavailableError("faces: down")),
        ], timeout=1)
        result = await engine.analyze(make_frame())
        assert result.models == ["objects"]
        assert "faces" in result.model_errors
        assert len(result.detections) == 1

    @pytest.mark.asyncio
    async def test_slow_model_times_out(self):
        engine = AnalysisEngine([
            FakeModel("objects", [det("person", 0.9)]),
            FakeModel("slow", [det("car", 0.9)], delay=1.0),
        ], timeout=0.05)
        result = await engine.analyze(make_frame())
        assert result.model_errors == {"slow": "timeout"}
        assert [d.label for d in result.detections] == ["person"]

    @pytest.mark.asyncio
    async def test_all_models_failing_raises(self):
        engine = AnalysisEngine([
            FakeModel("objects", error=RuntimeError("boom")),
            FakeModel("faces", error=RuntimeError("boom")),
        ], timeout=1)
        with pytest.raises(InferenceUnavailableError):
            await engine.analyze(make_frame())

    @pytest.mark.asyncio
    async def test_assigns_zones(self):
        engine = AnalysisEngine([FakeModel("objects", [det("person", 0.9, (0.1, 0.1, 0.2, 0.2))])], timeout=1)
        zones = {"entrance": [[0, 0], [0.5, 0], [0.5, 0.5], [0, 0.5]]}
        result = await engine.analyze(make_frame(), zones)
        assert result.detections[0].zone_id == "entrance"

    def test_needs_a_model(self):
        with pytest.raises(ValueError):
            AnalysisEngine([])


class TestHttpModelClient:
    def client(self, handler):
        return HttpModelClient("objects", "http://models/detect", timeout=1, api_key="k",
                               transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_parses_detections(self):
        seen = {}

        def handler(request):
            seen["key"] = request.headers.get("X-API-Key")
            seen["content_type"] = request.headers.get("content-type")
            return httpx.Response(200, json={"detections": [
                {"label": "person", "confidence": 0.91, "bbox": [0.1, 0.2, 0.3, 0.6]},
                {"label": "car", "confidence": 0.8, "bbox": [0.5, 0.5, 0.4, 0.9]},
                {"label": "dog", "confidence": "n/a", "bbox": [0.1, 0.1, 0.2, 0.2]},
            ]})

        detections = await self.client(handler).analyze(make_frame())
        assert seen["key"] == "k"
        assert seen["content_type"].startswith("multipart/form-data")
        assert len(detections) == 1
        assert detections[0].label == "person"
        assert detections[0].bbox == (0.1, 0.2, 0.3, 0.6)
        assert detections[0].source_model == "objects"

    @pytest.mark.asyncio
    async def test_server_error_raises_unavailable(self):
        with pytest.raises(InferenceUnavailableError):
            await self.client(lambda r: httpx.Response(503)).analyze(make_frame())

    @pytest.mark.asyncio
    async def test_connect_error_raises_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)
        with pytest.raises(InferenceUnavailableError):
            await self.client(handler).analyze(make_frame())

    @pytest.mark.asyncio
    async def test_client_error_returns_empty(self):
        assert await self.client(lambda r: httpx.Response(400)).analyze(make_frame()) == []

    @pytest.mark.asyncio
    async def test_malformed_json_returns_empty(self):
        assert await self.client(lambda r: httpx.Response(200, content=b"not json")).analyze(make_frame()) == []
