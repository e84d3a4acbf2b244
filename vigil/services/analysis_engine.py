# vigil/services/analysis_engine.py
"""
AI analysis engine: fans one frame out to every configured model and merges
the answers into a single detection list.

Models are remote inference servers reached over HTTP:
    POST <url>   multipart field "image" (JPEG)
    200 →        {"detections": [{"label", "confidence", "bbox": [x1, y1, x2, y2], "attributes"?}]}
bbox values are normalized to 0..1.

Merge rules:
    1. Drop detections under ANALYSIS_MIN_CONFIDENCE.
    2. Class-aware NMS across all models: same label and IoU >= ANALYSIS_NMS_IOU
       collapse into the highest-confidence box; attributes are unioned and the
       suppressed models are listed in attributes["merged_from"].
    3. Assign a zone from the camera's polygons by box centre.
    4. Sort by confidence, highest first.

A model that fails or times out is reported in model_errors; the frame is
still analysed with the remaining models. Only when every model fails is
InferenceUnavailableError raised.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from vigil.config import settings
from vigil.exceptions import InferenceUnavailableError
from vigil.services.stream_handler import Frame
from vigil.utils.geometry import clamp_bbox, find_zone, iou
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

MODEL_CONNECT_TIMEOUT = 5.0


@dataclass
class Detection:
    label: str
    confidence: float
    bbox: tuple
    source_model: str
    attributes: dict = field(default_factory=dict)
    zone_id: Optional[str] = None


@dataclass
class AnalysisResult:
    camera_id: str
    frame_sequence: int
    captured_at: datetime
    detections: list[Detection] = field(default_factory=list)
    models: list[str] = field(default_factory=list)
    model_errors: dict[str, str] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def has_detections(self) -> bool:
        return len(self.detections) > 0

    @property
    def max_confidence(self) -> float:
        return max((d.confidence for d in self.detections), default=0.0)

    @property
    def primary_label(self) -> Optional[str]:
        if not self.detections:
            return None
        return max(self.detections, key=lambda d: d.confidence).label


class AnalysisModel:
    """One inference backend. Subclasses return raw (unfiltered) detections."""

    name = "model"

    async def analyze(self, frame: Frame) -> list[Detection]:
        raise NotImplementedError


class HttpModelClient(AnalysisModel):
    def __init__(self, name: str, url: str, timeout: float = settings.ANALYSIS_TIMEOUT_SECONDS,
                 api_key: Optional[str] = settings.ANALYSIS_API_KEY,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.name = name
        self.url = url
        self.timeout = httpx.Timeout(timeout, connect=MODEL_CONNECT_TIMEOUT)
        self.api_key = api_key
        self._transport = transport

    def _headers(self) -> dict:
        return {"X-API-Key": self.api_key} if self.api_key else {}

    async def analyze(self, frame: Frame) -> list[Detection]:
        files = {"image": (f"{frame.camera_id}_{frame.sequence}.jpg", frame.data, frame.content_type)}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, files=files, headers=self._headers())
        except httpx.ConnectError as e:
            raise InferenceUnavailableError(f"{self.name}: cannot connect to {self.url}", e) from e
        except httpx.TimeoutException as e:
            raise InferenceUnavailableError(f"{self.name}: request timed out", e) from e
        except httpx.HTTPError as e:
            raise InferenceUnavailableError(f"{self.name}: {e}", e) from e

        if response.status_code >= 500:
            raise InferenceUnavailableError(f"{self.name}: server error HTTP {response.status_code}")
        if response.status_code != 200:
            logger.warning(f"[AI] {self.name} rejected frame: HTTP {response.status_code}")
            return []

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"[AI] {self.name} returned invalid JSON")
            return []
        return self._parse(payload)

    def _parse(self, payload) -> list[Detection]:
        items = payload.get("detections") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            logger.warning(f"[AI] {self.name} response has no 'detections' list")
            return []

        detections = []
        for item in items:
            if not isinstance(item, dict):
                continue
            bbox = clamp_bbox(item.get("bbox") or [])
            label = item.get("label")
            try:
                confidence = float(item.get("confidence"))
            except (TypeError, ValueError):
                continue
            if bbox is None or not label:
                continue
            attributes = item.get("attributes") if isinstance(item.get("attributes"), dict) else {}
            detections.append(Detection(label=str(label), confidence=confidence, bbox=bbox,
                                        source_model=self.name, attributes=dict(attributes)))
        return detections


def merge_detections(detections: list[Detection], min_confidence: float, iou_threshold: float) -> list[Detection]:
    """Confidence filter + class-aware NMS. Input order does not matter."""
    candidates = []
    for d in detections:
        if d.confidence < min_confidence:
            continue
        d.label = d.label.lower()
        candidates.append(d)

    # Stable order so ties resolve the same way every time
    candidates.sort(key=lambda d: (-d.confidence, d.source_model, d.bbox))
    kept: list[Detection] = []
    for d in candidates:
        winner = next((k for k in kept if k.label == d.label and iou(k.bbox, d.bbox) >= iou_threshold), None)
        if winner is None:
            kept.append(d)
            continue
        for key, value in d.attributes.items():
            winner.attributes.setdefault(key, value)
        if d.source_model != winner.source_model:
            merged = winner.attributes.setdefault("merged_from", [])
            if d.source_model not in merged:
                merged.append(d.source_model)
    return kept


class AnalysisEngine:
    def __init__(self, models: list[AnalysisModel],
                 min_confidence: float = settings.ANALYSIS_MIN_CONFIDENCE,
                 iou_threshold: float = settings.ANALYSIS_NMS_IOU,
                 timeout: float = settings.ANALYSIS_TIMEOUT_SECONDS):
        if not models:
            raise ValueError("AnalysisEngine needs at least one model")
        self.models = models
        self.min_confidence = min_confidence
        self.iou_threshold = iou_threshold
        self.timeout = timeout

    async def _run_model(self, model: AnalysisModel, frame: Frame) -> list[Detection]:
        return await asyncio.wait_for(model.analyze(frame), timeout=self.timeout)

    async def analyze(self, frame: Frame, zones: Optional[dict] = None) -> AnalysisResult:
        start = time.perf_counter()
        outcomes = await asyncio.gather(*(self._run_model(m, frame) for m in self.models),
                                        return_exceptions=True)

        result = AnalysisResult(camera_id=frame.camera_id, frame_sequence=frame.sequence,
                                captured_at=frame.captured_at)
        raw: list[Detection] = []
        for model, outcome in zip(self.models, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, asyncio.TimeoutError):
                result.model_errors[model.name] = "timeout"
            elif isinstance(outcome, Exception):
                result.model_errors[model.name] = str(outcome) or type(outcome).__name__
            else:
                result.models.append(model.name)
                raw.extend(outcome)

        if not result.models:
            logger.error(f"[AI] All models failed for {frame.camera_id}#{frame.sequence}: {result.model_errors}")
            raise InferenceUnavailableError(f"All analysis models failed: {result.model_errors}")
        if result.model_errors:
            logger.warning(f"[AI] Partial analysis for {frame.camera_id}: {result.model_errors}")

        result.detections = merge_detections(raw, self.min_confidence, self.iou_threshold)
        for d in result.detections:
            d.zone_id = find_zone(d.bbox, zones)

        result.duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.debug(f"[AI] {frame.camera_id}#{frame.sequence}: {len(result.detections)} detections "
                     f"in {result.duration_ms}ms")
        return result


def build_engine_from_settings() -> AnalysisEngine:
    models = [HttpModelClient(name, url) for name, url in settings.ANALYSIS_MODELS.items()]
    return AnalysisEngine(models)
