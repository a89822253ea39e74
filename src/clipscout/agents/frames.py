"""OpenCV helpers for segment frames and candidate screenshots."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)

VISION_MAX_WIDTH = 1024
JPEG_QUALITY = 85


def grab_frame(video_path: str | Path, at_seconds: float = 0.0) -> Optional[bytes]:
    """Return one PNG-encoded frame of a local video at the given time."""
    cap = cv2.VideoCapture(str(video_path))
    try:
        if not cap.isOpened():
            logger.warning("Cannot open video: %s", video_path)
            return None
        cap.set(cv2.CAP_PROP_POS_MSEC, max(at_seconds, 0.0) * 1000)
        ok, frame = cap.read()
        if not ok or frame is None:
            logger.warning("No frame at %.1fs in %s", at_seconds, video_path)
            return None
        ok, buf = cv2.imencode(".png", frame)
        return buf.tobytes() if ok else None
    finally:
        cap.release()


def prepare_for_vision(image: bytes, max_width: int = VISION_MAX_WIDTH) -> bytes:
    """Downscale and re-encode as JPEG; undecodable input is returned as-is."""
    frame = cv2.imdecode(np.frombuffer(image, dtype=np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        return image
    h, w = frame.shape[:2]
    if w > max_width:
        scale = max_width / w
        frame = cv2.resize(frame, (max_width, int(h * scale)), interpolation=cv2.INTER_AREA)
    ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY])
    return buf.tobytes() if ok else image
