# vigil/services/stream_handler.py
"""
Video stream handler — pulls MJPEG frames from a camera over HTTP.

Endpoint: camera.stream_url (multipart/x-mixed-replace MJPEG, HTTP Digest auth if credentials set)
Frames:   complete JPEG images cut out of the byte stream by their SOI/EOI markers.

The handler reconnects on its own with exponential backoff and samples frames
down to STREAM_TARGET_FPS. Backpressure towards the analysis workers is handled
by FrameBuffer, which drops the oldest frame rather than blocking the reader.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

import httpx

from vigil.config import settings
from vigil.exceptions import StreamError
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

_SOI = b"\xff\xd8"
_EOI = b"\xff\xd9"


@dataclass
class Frame:
    camera_id: str
    sequence: int
    captured_at: datetime
    data: bytes
    content_type: str = "image/jpeg"


def extract_jpeg_frames(buffer: bytes, max_frame_bytes: int = settings.STREAM_MAX_FRAME_BYTES) -> tuple[list[bytes], bytes]:
    """
    Cut complete JPEG images out of buffer.
    Returns (images, remainder); remainder is the unread tail to prepend to the next chunk.
    """
    images = []
    while True:
        start = buffer.find(_SOI)
        if start == -1:
            # Keep a trailing 0xFF, it may be the first half of the next SOI
            return images, buffer[-1:] if buffer.endswith(b"\xff") else b""
        end = buffer.find(_EOI, start + 2)
        if end == -1:
            pending = buffer[start:]
            if len(pending) > max_frame_bytes:
                logger.warning(f"Discarding {len(pending)} bytes without JPEG end marker")
                return images, b""
            return images, pending
        images.append(buffer[start:end + 2])
        buffer = buffer[end + 2:]


class FrameBuffer:
    """Bounded frame queue shared by all stream readers. Full → oldest frame is dropped."""

    def __init__(self, maxsize: int = settings.FRAME_BUFFER_SIZE):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.maxsize = maxsize
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def put_nowait(self, frame: Frame) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self._queue.task_done()
            self.dropped += 1
        self._queue.put_nowait(frame)

    async def get(self) -> Frame:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()

    def utilization(self) -> float:
        return self._queue.qsize() / self.maxsize


class VideoStreamHandler:
    """
    Opens one camera stream and yields sampled frames, reconnecting forever
    (or up to max_reconnects consecutive failures, then StreamError).
    """

    def __init__(
        self,
        camera_id: str,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        target_fps: float = settings.STREAM_TARGET_FPS,
        max_reconnects: Optional[int] = None,
        min_backoff: float = settings.STREAM_MIN_BACKOFF,
        max_backoff: float = settings.STREAM_MAX_BACKOFF,
        on_status: Optional[Callable[[str], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.camera_id = camera_id
        self.url = url
        self.username = username
        self.password = password
        self.target_fps = target_fps
        self.max_reconnects = max_reconnects
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self.on_status = on_status
        self._transport = transport
        self._clock = clock
        self._stopped = False
        self._sequence = 0
        self._last_emit: Optional[float] = None
        self.status = "offline"
        self.frames_received = 0

    def stop(self):
        self._stopped = True

    def _client(self) -> httpx.AsyncClient:
        auth = httpx.DigestAuth(self.username, self.password) if self.username else None
        # No read timeout: MJPEG streams stay open indefinitely
        timeout = httpx.Timeout(10.0, read=None)
        return httpx.AsyncClient(auth=auth, timeout=timeout, transport=self._transport)

    def _set_status(self, status: str):
        if status == self.status:
            return
        self.status = status
        if self.on_status:
            try:
                self.on_status(status)
            except Exception as e:
                logger.error(f"{self.camera_id} status callback failed: {e}", exc_info=True)

    def _sample(self, data: bytes) -> Optional[Frame]:
        self.frames_received += 1
        now = self._clock()
        if self.target_fps > 0 and self._last_emit is not None:
            if now - self._last_emit < 1.0 / self.target_fps:
                return None
        self._last_emit = now
        self._sequence += 1
        return Frame(camera_id=self.camera_id, sequence=self._sequence,
                     captured_at=datetime.utcnow(), data=data)

    async def frames(self) -> AsyncIterator[Frame]:
        backoff = self.min_backoff
        failures = 0

        while not self._stopped:
            logger.info(f"📡 Connecting to stream: {self.camera_id} ({self.url})")
            try:
                async with self._client() as client:
                    async with client.stream("GET", self.url) as response:
                        if response.status_code != 200:
                            logger.warning(f"⚠️  {self.camera_id} stream returned HTTP {response.status_code}")
                        else:
                            logger.info(f"✅ {self.camera_id} stream connected")
                            self._set_status("online")
                            backoff = self.min_backoff
                            failures = 0

                            buffer = b""
                            async for chunk in response.aiter_bytes(chunk_size=settings.STREAM_READ_CHUNK):
                                images, buffer = extract_jpeg_frames(buffer + chunk)
                                for data in images:
                                    frame = self._sample(data)
                                    if frame is not None:
                                        yield frame
                                if self._stopped:
                                    return
                            logger.warning(f"{self.camera_id} stream ended by server")

            except httpx.ConnectError:
                logger.warning(f"❌ {self.camera_id} — connection refused. Retry in {backoff}s")
            except httpx.TimeoutException:
                logger.warning(f"⏱  {self.camera_id} — timeout. Reconnecting...")
            except httpx.HTTPError as e:
                logger.error(f"❌ {self.camera_id} — stream error: {e}")

            if self._stopped:
                return

            failures += 1
            if self.max_reconnects is not None and failures > self.max_reconnects:
                self._set_status("error")
                raise StreamError(f"{self.camera_id}: gave up after {failures} failed connection attempts")

            self._set_status("offline")
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.max_backoff)
