# vigil/services/pipeline.py
"""
Processing pipeline: ties the layers together on the event loop.

    camera stream ──► VideoStreamHandler ──► FrameBuffer ──► N analysis workers
                       (one task per camera)  (drop-oldest)     │
                                                                ├─► AnalysisEngine
                                                                └─► event_processor (fresh DB session per frame)

The ScalingManager resizes the worker pool from buffer utilization every
SCALING_INTERVAL_SECONDS and the same tick records pipeline metrics.
"""

import asyncio
from typing import Callable, Optional

from vigil.config import settings
from vigil.database import SessionLocal
from vigil.services.analysis_engine import AnalysisEngine
from vigil.services.camera_service import get_camera_zones, set_camera_status
from vigil.services.event_processor import process_result
from vigil.services.metrics_service import record_metric
from vigil.services.retention_service import enforce_retention
from vigil.services.scaling_manager import ScalingManager, ScalingPolicy
from vigil.services.stream_handler import FrameBuffer, VideoStreamHandler
from vigil.exceptions import InferenceUnavailableError, StreamError
from vigil.utils.logger import get_logger

logger = get_logger(__name__)


def camera_config(camera) -> dict:
    return {"camera_id": camera.camera_id, "stream_url": camera.stream_url, "username": camera.username,
            "password": camera.password, "enabled": camera.enabled}


class Pipeline:
    def __init__(self, engine: AnalysisEngine, policy: Optional[ScalingPolicy] = None,
                 buffer_size: int = settings.FRAME_BUFFER_SIZE,
                 session_factory: Callable = SessionLocal,
                 handler_factory: Callable[..., VideoStreamHandler] = VideoStreamHandler,
                 scaling_interval: float = settings.SCALING_INTERVAL_SECONDS):
        self.engine = engine
        self.policy = policy or ScalingPolicy.from_settings()
        self.buffer = FrameBuffer(buffer_size)
        self.session_factory = session_factory
        self.handler_factory = handler_factory
        self.scaling_interval = scaling_interval
        self.scaler = ScalingManager(self.policy)
        self.handlers: dict[str, VideoStreamHandler] = {}
        self._readers: dict[str, asyncio.Task] = {}
        self._workers: list[asyncio.Task] = []
        self._background: list[asyncio.Task] = []
        self.running = False
        self.frames_processed = 0
        self.events_created = 0
        self.errors = 0

    # ── Lifecycle ─────────────────────────────────────────────────────────
    async def start(self, cameras: list[dict]):
        """cameras: dicts with camera_id, stream_url, username, password, enabled."""
        if self.running:
            return
        self.running = True
        for cam in cameras:
            if not cam.get("enabled", True):
                continue
            self._start_reader(cam)
        self.set_workers(self.scaler.current)
        self._background.append(asyncio.create_task(
            self.scaler.run(self.buffer.utilization, self.set_workers, self.scaling_interval),
            name="pipeline-scaler"))
        self._background.append(asyncio.create_task(self._metrics_loop(), name="pipeline-metrics"))
        logger.info(f"🚀 Pipeline started: {len(self._readers)} cameras, {len(self._workers)} workers")

    async def stop(self):
        if not self.running:
            return
        self.running = False
        self.scaler.stop()
        for handler in self.handlers.values():
            handler.stop()
        tasks = list(self._readers.values()) + self._workers + self._background
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._readers.clear()
        self._workers.clear()
        self._background.clear()
        self.handlers.clear()
        logger.info("🛑 Pipeline stopped")

    def sync_camera(self, cam: dict):
        """Start, restart or stop the reader for a camera whose config changed."""
        if not self.running:
            return
        self.remove_camera(cam["camera_id"])
        if cam.get("enabled", True):
            self._start_reader(cam)
            logger.info(f"📡 Pipeline now reading {cam['camera_id']}")

    def remove_camera(self, camera_id: str):
        handler = self.handlers.pop(camera_id, None)
        if handler is not None:
            handler.stop()
        task = self._readers.pop(camera_id, None)
        if task is not None:
            task.cancel()
            logger.info(f"📡 Pipeline stopped reading {camera_id}")

    def _start_reader(self, cam: dict):
        camera_id = cam["camera_id"]
        handler = self.handler_factory(
            camera_id, cam["stream_url"],
            username=cam.get("username"), password=cam.get("password"),
            on_status=lambda status, cid=camera_id: self._record_status(cid, status),
        )
        self.handlers[camera_id] = handler
        self._readers[camera_id] = asyncio.create_task(self._read(handler), name=f"reader-{camera_id}")

    # ── Workers ───────────────────────────────────────────────────────────
    def set_workers(self, count: int):
        count = max(self.policy.min_workers, min(count, self.policy.max_workers))
        self._workers = [w for w in self._workers if not w.done()]
        while len(self._workers) < count:
            index = len(self._workers)
            self._workers.append(asyncio.create_task(self._work(), name=f"worker-{index}"))
        while len(self._workers) > count:
            self._workers.pop().cancel()
        self.scaler.current = count

    async def _read(self, handler: VideoStreamHandler):
        try:
            async for frame in handler.frames():
                self.buffer.put_nowait(frame)
        except StreamError as e:
            logger.error(f"❌ {handler.camera_id} reader stopped: {e}")

    async def _work(self):
        while True:
            frame = await self.buffer.get()
            try:
                await self.process_frame(frame)
            except InferenceUnavailableError as e:
                self.errors += 1
                logger.warning(f"[PIPELINE] Frame {frame.camera_id}#{frame.sequence} skipped: {e}")
            except Exception as e:
                self.errors += 1
                logger.error(f"[PIPELINE] Frame {frame.camera_id}#{frame.sequence} failed: {e}", exc_info=True)
            finally:
                self.buffer.task_done()

    async def process_frame(self, frame):
        db = self.session_factory()
        try:
            zones = get_camera_zones(db, frame.camera_id)
            result = await self.engine.analyze(frame, zones)
            self.frames_processed += 1
            event = await process_result(result, db, frame=frame)
            if event is not None:
                self.events_created += 1
            return event
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ── Bookkeeping ───────────────────────────────────────────────────────
    def _record_status(self, camera_id: str, status: str):
        db = self.session_factory()
        try:
            set_camera_status(db, camera_id, status)
        finally:
            db.close()

    async def _metrics_loop(self):
        ticks_per_retention = max(1, int(settings.RETENTION_INTERVAL_HOURS * 3600 / self.scaling_interval))
        tick = 0
        while True:
            await asyncio.sleep(self.scaling_interval)
            tick += 1
            db = self.session_factory()
            try:
                record_metric(db, "pipeline.queue_utilization", self.buffer.utilization(), commit=False)
                record_metric(db, "pipeline.workers", len(self._workers), commit=False)
                record_metric(db, "pipeline.frames_dropped", self.buffer.dropped, commit=False)
                db.commit()
                if tick % ticks_per_retention == 0:
                    enforce_retention(db)
            except Exception as e:
                db.rollback()
                logger.error(f"[PIPELINE] Metrics tick failed: {e}", exc_info=True)
            finally:
                db.close()

    def status(self) -> dict:
        return {
            "running": self.running,
            "cameras": {cid: h.status for cid, h in self.handlers.items()},
            "workers": len([w for w in self._workers if not w.done()]),
            "queue_depth": self.buffer.qsize(),
            "queue_utilization": round(self.buffer.utilization(), 3),
            "frames_dropped": self.buffer.dropped,
            "frames_processed": self.frames_processed,
            "events_created": self.events_created,
            "errors": self.errors,
            "last_scaling_decision": self.scaler.last_decision.to_dict() if self.scaler.last_decision else None,
        }


pipeline: Optional[Pipeline] = None
