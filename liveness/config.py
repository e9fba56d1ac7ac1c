"""
Central place for liveness thresholds and service settings.

Every value can be overridden with an environment variable of the same name,
e.g. ``LIVENESS_STEP_TIMEOUT_MS=8000``. Values are read once at import time.
"""

import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


# ============================================================================
# MOTION VALIDATOR
# ============================================================================
# Sliding window is frame-count based, so its real-time span depends on the
# tick rate (18 frames is ~0.3 s at 60 fps).
WINDOW_SIZE: int = _env_int("LIVENESS_WINDOW_SIZE", 18)
MIN_SAMPLES: int = _env_int("LIVENESS_MIN_SAMPLES", 6)

# Largest per-frame change on the judged axis before we call it a photo swap
MAX_FRAME_DELTA: float = _env_float("LIVENESS_MAX_FRAME_DELTA", 0.12)

MIN_DISPLACEMENT_HORIZONTAL: float = _env_float("LIVENESS_MIN_DISPLACEMENT_HORIZONTAL", 0.30)
MIN_DISPLACEMENT_VERTICAL: float = _env_float("LIVENESS_MIN_DISPLACEMENT_VERTICAL", 0.18)
MIN_DIRECTIONAL_RATIO: float = _env_float("LIVENESS_MIN_DIRECTIONAL_RATIO", 0.55)

# ============================================================================
# BLINK DETECTOR
# ============================================================================
BLINK_CLOSED_THRESHOLD: float = _env_float("LIVENESS_BLINK_CLOSED_THRESHOLD", 0.4)
BLINK_OPEN_THRESHOLD: float = _env_float("LIVENESS_BLINK_OPEN_THRESHOLD", 0.2)

# ============================================================================
# CHALLENGE ORCHESTRATOR
# ============================================================================
STEP_TIMEOUT_MS: float = _env_float("LIVENESS_STEP_TIMEOUT_MS", 5000.0)
STEP_ADVANCE_PAUSE_MS: float = _env_float("LIVENESS_STEP_ADVANCE_PAUSE_MS", 800.0)
CENTER_YAW_THRESHOLD: float = _env_float("LIVENESS_CENTER_YAW_THRESHOLD", 0.25)
CENTER_PITCH_THRESHOLD: float = _env_float("LIVENESS_CENTER_PITCH_THRESHOLD", 0.20)
CENTER_HOLD_FRAMES: int = _env_int("LIVENESS_CENTER_HOLD_FRAMES", 15)
NUM_HEAD_CHALLENGES: int = _env_int("LIVENESS_NUM_HEAD_CHALLENGES", 3)

# ============================================================================
# INFERENCE (MediaPipe Face Landmarker)
# ============================================================================
MODEL_PATH: Path = Path(
    os.getenv(
        "LIVENESS_MODEL_PATH",
        str(Path(__file__).resolve().parent / "models" / "face_landmarker.task"),
    )
)
MODEL_URL: str = os.getenv(
    "LIVENESS_MODEL_URL",
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/1/face_landmarker.task",
)
MAX_NUM_FACES: int = _env_int("LIVENESS_MAX_NUM_FACES", 4)
MIN_DETECTION_CONFIDENCE: float = _env_float("LIVENESS_MIN_DETECTION_CONFIDENCE", 0.5)

# ============================================================================
# CAMERA / UPLOADS / SERVER
# ============================================================================
CAMERA_INDEX: int = _env_int("LIVENESS_CAMERA_INDEX", 0)
CAMERA_WIDTH: int = _env_int("LIVENESS_CAMERA_WIDTH", 640)
CAMERA_HEIGHT: int = _env_int("LIVENESS_CAMERA_HEIGHT", 480)

MAX_VIDEO_DURATION_S: float = _env_float("LIVENESS_MAX_VIDEO_DURATION_S", 15.0)
MAX_VIDEO_FRAMES: int = _env_int("LIVENESS_MAX_VIDEO_FRAMES", 225)  # 15s * 15fps

LOG_LEVEL: str = os.getenv("LIVENESS_LOG_LEVEL", "INFO").upper()

HOST: str = os.getenv("LIVENESS_HOST", "0.0.0.0")
PORT: int = _env_int("LIVENESS_PORT", 8000)
