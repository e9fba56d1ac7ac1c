from dataclasses import dataclass
from typing import Any, Sequence, Tuple

import numpy as np

from .errors import LandmarkSetError

# MediaPipe Face Mesh landmark indices (478-point topology).
# Changing any of these breaks both pose extraction and face selection.
NOSE_TIP = 1
FOREHEAD = 10
LEFT_EYE_OUTER = 33
CHIN = 152
LEFT_CHEEK = 234
RIGHT_EYE_OUTER = 263
RIGHT_CHEEK = 454

NUM_LANDMARKS = 478
_REQUIRED_POINTS = max(NOSE_TIP, FOREHEAD, LEFT_EYE_OUTER, CHIN, LEFT_CHEEK, RIGHT_EYE_OUTER, RIGHT_CHEEK) + 1

# Below this the face is too small or edge-on to normalize by
DEGENERATE_EPSILON = 0.001


@dataclass(frozen=True)
class HeadPose:
    """
    Normalized head pose derived from landmark ratios, not true Euler angles.

    yaw:   0 = centered, positive = turning left, negative = turning right
    pitch: 0 = eye-line level with the nose, negative = up, positive = down
    """
    yaw: float
    pitch: float
    nose_tip: Tuple[float, float]


def as_landmark_array(landmarks: Any) -> np.ndarray:
    """
    Normalize a landmark set into an ``(N, 2+)`` float array.

    Accepts numpy arrays, sequences of ``(x, y[, z])`` tuples and MediaPipe
    ``NormalizedLandmark`` objects (anything with ``.x`` and ``.y``).
    """
    if isinstance(landmarks, np.ndarray):
        points = landmarks
    else:
        landmarks = list(landmarks)
        try:
            if landmarks and hasattr(landmarks[0], "x"):
                points = np.array([(p.x, p.y) for p in landmarks], dtype=np.float64)
            else:
                points = np.asarray(landmarks, dtype=np.float64)
        except (AttributeError, TypeError, ValueError) as e:
            raise LandmarkSetError(f"Landmark set is not a list of numeric points: {e}") from e

    if points.ndim != 2 or points.shape[1] < 2:
        raise LandmarkSetError(f"Landmark set must be a list of points, got shape {points.shape}")
    if points.shape[0] < _REQUIRED_POINTS:
        raise LandmarkSetError(
            f"Landmark set has {points.shape[0]} points; expected the {NUM_LANDMARKS}-point face mesh"
        )
    return points


def extract_head_pose(landmarks: Sequence[Any]) -> HeadPose:
    """
    Estimate yaw and pitch from five face mesh landmarks.

    Yaw is the nose offset from the eye midpoint, normalized by inter-eye
    distance. Pitch is the nose offset below the eye-line, normalized by face
    height (forehead to chin). Degenerate geometry yields 0 on that axis.
    """
    points = as_landmark_array(landmarks)
    nose_x, nose_y = points[NOSE_TIP, 0], points[NOSE_TIP, 1]
    left_eye = points[LEFT_EYE_OUTER]
    right_eye = points[RIGHT_EYE_OUTER]

    eye_mid_x = (left_eye[0] + right_eye[0]) / 2
    inter_eye_distance = abs(right_eye[0] - left_eye[0])
    yaw = (nose_x - eye_mid_x) / inter_eye_distance if inter_eye_distance > DEGENERATE_EPSILON else 0.0

    eye_mid_y = (left_eye[1] + right_eye[1]) / 2
    face_height = abs(points[CHIN, 1] - points[FOREHEAD, 1])
    pitch = (nose_y - eye_mid_y) / face_height if face_height > DEGENERATE_EPSILON else 0.0

    return HeadPose(yaw=float(yaw), pitch=float(pitch), nose_tip=(float(nose_x), float(nose_y)))
