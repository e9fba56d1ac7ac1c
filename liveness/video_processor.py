import logging
import os
import tempfile
from typing import List, Optional, Tuple

import cv2
import numpy as np
from fastapi import UploadFile

logger = logging.getLogger(__name__)

TimedFrame = Tuple[float, np.ndarray]


async def save_uploaded_file(upload_file: UploadFile) -> str:
    """
    Save an uploaded video to a temporary file and return its path.
    """
    suffix = os.path.splitext(upload_file.filename or "")[1] or ".mp4"
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as temp_file:
        content = await upload_file.read()
        temp_file.write(content)
        return temp_file.name


def extract_frames(video_path: str, max_frames: Optional[int] = None) -> List[TimedFrame]:
    """
    Read frames from a video file together with their timestamps.

    Args:
        video_path: Path of the video file.
        max_frames: Maximum number of frames (None reads everything).

    Returns:
        ``(timestamp_ms, frame)`` pairs. Timestamps come from the container
        when available and fall back to ``index / fps``.
    """
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise ValueError(f"Could not open video file: {video_path}")

    fps = cap.get(cv2.CAP_PROP_FPS)
    frame_interval_ms = 1000.0 / fps if fps and fps > 0 else 1000.0 / 30

    frames: List[TimedFrame] = []
    last_timestamp = -1.0
    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                break

            timestamp = cap.get(cv2.CAP_PROP_POS_MSEC)
            if timestamp <= last_timestamp:
                timestamp = len(frames) * frame_interval_ms
                if timestamp <= last_timestamp:
                    timestamp = last_timestamp + frame_interval_ms
            frames.append((timestamp, frame))
            last_timestamp = timestamp

            if max_frames and len(frames) >= max_frames:
                break
    finally:
        cap.release()

    logger.debug(f"Extracted {len(frames)} frames from {video_path}")
    return frames


def cleanup_temp_file(file_path: str) -> None:
    """
    Delete a temporary file, logging instead of raising on failure.
    """
    try:
        if os.path.exists(file_path):
            os.unlink(file_path)
    except OSError as e:
        logger.warning(f"Could not delete temp file {file_path}: {e}")


def get_video_info(video_path: str) -> dict:
    """
    Return fps, frame count, duration and resolution of a video file.
    """
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise ValueError(f"Could not open video file: {video_path}")

    try:
        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    finally:
        cap.release()

    return {
        "fps": fps,
        "frame_count": frame_count,
        "duration": frame_count / fps if fps > 0 else 0,
        "width": width,
        "height": height,
    }
