"""
MediaPipe Face Landmarker wrapper and the lease-scoped pool that shares it.

The landmarker is expensive to create, so one instance is shared by every
session holding a lease. The instance is closed when the last lease is
released and recreated on the next acquire().
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import cv2
import numpy as np

from . import config
from .errors import ResourceAcquisitionError

logger = logging.getLogger(__name__)


@dataclass
class FaceDetection:
    """Landmarks and blendshape scores for every face found in one frame."""
    landmark_sets: List[np.ndarray]
    expression_score_sets: Optional[List[Dict[str, float]]] = None


def blendshape_scores(categories: Iterable[Any]) -> Dict[str, float]:
    """Turn MediaPipe blendshape categories into a ``{name: score}`` mapping."""
    return {category.category_name: float(category.score) for category in categories}


class FaceLandmarker:
    """
    Thin wrapper over a MediaPipe ``FaceLandmarker`` running in VIDEO mode.

    VIDEO mode rejects non-increasing timestamps, so timestamps are forced to
    be strictly increasing per instance.
    """

    def __init__(self, backend: Any):
        self._backend = backend
        self._last_timestamp_ms = -1
        self._lock = threading.Lock()

    def detect(self, frame: np.ndarray, timestamp_ms: float) -> FaceDetection:
        """
        Args:
            frame: BGR frame as returned by OpenCV.
            timestamp_ms: Frame timestamp in milliseconds.
        """
        import mediapipe as mp

        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        with self._lock:
            timestamp = max(int(timestamp_ms), self._last_timestamp_ms + 1)
            self._last_timestamp_ms = timestamp
            result = self._backend.detect_for_video(image, timestamp)

        landmark_sets = [
            np.array([(p.x, p.y, p.z) for p in face], dtype=np.float64)
            for face in result.face_landmarks
        ]
        score_sets = None
        if result.face_blendshapes:
            score_sets = [blendshape_scores(shapes) for shapes in result.face_blendshapes]
        return FaceDetection(landmark_sets=landmark_sets, expression_score_sets=score_sets)

    def close(self) -> None:
        self._backend.close()


def create_face_landmarker(
    model_path: Path = config.MODEL_PATH,
    max_num_faces: int = config.MAX_NUM_FACES,
    min_detection_confidence: float = config.MIN_DETECTION_CONFIDENCE,
) -> FaceLandmarker:
    """Load the Face Landmarker task model. Raises ResourceAcquisitionError."""
    model_path = Path(model_path)
    if not model_path.exists():
        raise ResourceAcquisitionError(
            f"Face landmarker model not found: {model_path}. Run `python -m liveness.download_model`."
        )

    try:
        from mediapipe.tasks import python as mp_tasks
        from mediapipe.tasks.python import vision

        options = vision.FaceLandmarkerOptions(
            base_options=mp_tasks.BaseOptions(model_asset_path=str(model_path)),
            running_mode=vision.RunningMode.VIDEO,
            num_faces=max_num_faces,
            min_face_detection_confidence=min_detection_confidence,
            output_face_blendshapes=True,  # needed for blink detection
            output_facial_transformation_matrixes=False,
        )
        backend = vision.FaceLandmarker.create_from_options(options)
    except Exception as e:
        raise ResourceAcquisitionError(f"Could not load face landmarker: {e}") from e

    logger.info(f"Face landmarker loaded from {model_path} (max {max_num_faces} faces)")
    return FaceLandmarker(backend)


class LandmarkerLease:
    """A claim on the pool's shared landmarker. Usable as a context manager."""

    def __init__(self, pool: "LandmarkerPool", landmarker: FaceLandmarker):
        self._pool = pool
        self._landmarker = landmarker
        self._released = False

    @property
    def landmarker(self) -> FaceLandmarker:
        if self._released:
            raise ResourceAcquisitionError("Landmarker lease has already been released.")
        return self._landmarker

    @property
    def released(self) -> bool:
        return self._released

    def detect(self, frame: np.ndarray, timestamp_ms: float) -> FaceDetection:
        return self.landmarker.detect(frame, timestamp_ms)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._pool._release()

    def __enter__(self) -> "LandmarkerLease":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class LandmarkerPool:
    """
    Reference-counted owner of a single shared FaceLandmarker.

    acquire() returns the same instance while at least one lease is
    outstanding; releasing the last lease closes it.
    """

    def __init__(self, factory: Callable[[], FaceLandmarker] = create_face_landmarker):
        self._factory = factory
        self._instance: Optional[FaceLandmarker] = None
        self._leases = 0
        self._lock = threading.Lock()

    @property
    def active_leases(self) -> int:
        return self._leases

    def acquire(self) -> LandmarkerLease:
        with self._lock:
            if self._instance is None:
                self._instance = self._factory()
            self._leases += 1
            logger.info(f"Landmarker lease acquired ({self._leases} active)")
            return LandmarkerLease(self, self._instance)

    def _release(self) -> None:
        with self._lock:
            self._leases -= 1
            logger.info(f"Landmarker lease released ({self._leases} active)")
            if self._leases == 0 and self._instance is not None:
                instance, self._instance = self._instance, None
                instance.close()
