from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from .pose import CHIN, FOREHEAD, LEFT_CHEEK, RIGHT_CHEEK, as_landmark_array


@dataclass
class SelectedFace:
    """The subject evaluated for the current frame. Not tracked across frames."""
    landmarks: Any
    expression_scores: Optional[Mapping[str, float]]
    face_index: int


def face_area(landmarks: Any) -> float:
    """Bounding-box area from the forehead, chin and both cheek landmarks."""
    points = as_landmark_array(landmarks)
    width = abs(points[RIGHT_CHEEK, 0] - points[LEFT_CHEEK, 0])
    height = abs(points[CHIN, 1] - points[FOREHEAD, 1])
    return float(width * height)


def select_largest_face(
    landmark_sets: Sequence[Any],
    expression_score_sets: Optional[Sequence[Optional[Mapping[str, float]]]] = None,
) -> Optional[SelectedFace]:
    """
    Pick the face with the largest bounding box, i.e. the closest subject.

    Ties keep the earliest face. Returns None when nothing was detected.
    No memory of earlier frames is kept, so a different person may be chosen
    as soon as they appear larger.
    """
    if landmark_sets is None or len(landmark_sets) == 0:
        return None

    best_index = 0
    best_area = -1.0
    for index, landmarks in enumerate(landmark_sets):
        area = face_area(landmarks)
        if area > best_area:
            best_area = area
            best_index = index

    scores = None
    if expression_score_sets is not None and best_index < len(expression_score_sets):
        scores = expression_score_sets[best_index]

    return SelectedFace(
        landmarks=landmark_sets[best_index],
        expression_scores=scores,
        face_index=best_index,
    )
