# vigil/services/snapshot_service.py
"""
Snapshot service — stores the analysed frame behind an event as a JPEG.

Saves to: SNAPSHOT_DIR/snap_{event_type}_{camera_id}_{timestamp}.jpg
"""

import os
from datetime import datetime
from typing import Optional

from vigil.config import settings
from vigil.services.stream_handler import Frame
from vigil.utils.logger import get_logger

logger = get_logger(__name__)


def save_snapshot(frame: Frame, event_type: str, directory: Optional[str] = None) -> Optional[str]:
    """
    Write the frame to disk.
    Returns the saved file path, or None if it failed.
    """
    directory = directory or settings.SNAPSHOT_DIR
    timestamp = frame.captured_at.strftime("%Y%m%d_%H%M%S_%f")
    filename = f"snap_{event_type}_{frame.camera_id}_{timestamp}.jpg"
    filepath = os.path.join(directory, filename)

    try:
        os.makedirs(directory, exist_ok=True)
        with open(filepath, "wb") as f:
            f.write(frame.data)
    except OSError as e:
        logger.error(f"[SNAPSHOT] Failed for {frame.camera_id}: {e}")
        return None

    logger.info(f"[SNAPSHOT] Saved {filename} ({len(frame.data)} bytes)")
    return filepath


def delete_file(path: Optional[str]) -> bool:
    """Remove a stored file. Missing files count as already removed."""
    if not path:
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"[STORAGE] Could not delete {path}: {e}")
        return False

