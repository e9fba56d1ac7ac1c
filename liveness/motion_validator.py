import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

from . import config
from .models.challenges import ChallengeDirection
from .pose import HeadPose

logger = logging.getLogger(__name__)

SUDDEN_MOVEMENT_REASON = "Sudden movement detected, please move slowly"

# Sign of the axis delta for each direction in raw (non-mirrored) MediaPipe
# coordinates. Tied to the yaw/pitch convention in pose.extract_head_pose.
EXPECTED_SIGN = {
    ChallengeDirection.TURN_LEFT: 1,
    ChallengeDirection.TURN_RIGHT: -1,
    ChallengeDirection.LOOK_UP: -1,
    ChallengeDirection.LOOK_DOWN: 1,
}


@dataclass(frozen=True)
class MotionResult:
    is_valid: bool
    progress: float
    rejection_reason: Optional[str] = None


class MotionValidator:
    """
    Judges whether a sliding window of poses is a genuine, slow head turn.

    Rejects jitter, held static poses and instantaneous substitutions such as
    a swapped photo. A single oversized jump rejects every judgment until it
    ages out of the window.
    """

    def __init__(
        self,
        window_size: int = config.WINDOW_SIZE,
        min_samples: int = config.MIN_SAMPLES,
        max_frame_delta: float = config.MAX_FRAME_DELTA,
        min_displacement_horizontal: float = config.MIN_DISPLACEMENT_HORIZONTAL,
        min_displacement_vertical: float = config.MIN_DISPLACEMENT_VERTICAL,
        min_directional_ratio: float = config.MIN_DIRECTIONAL_RATIO,
    ):
        self.window_size = window_size
        self.min_samples = min_samples
        self.max_frame_delta = max_frame_delta
        self.min_displacement_horizontal = min_displacement_horizontal
        self.min_displacement_vertical = min_displacement_vertical
        self.min_directional_ratio = min_directional_ratio
        self.reset()

    def reset(self) -> None:
        self.pose_history = deque(maxlen=self.window_size)
        self._is_started = False

    @property
    def is_started(self) -> bool:
        return self._is_started

    def min_displacement(self, direction: ChallengeDirection) -> float:
        if direction.is_horizontal:
            return self.min_displacement_horizontal
        return self.min_displacement_vertical

    def add_frame(self, pose: HeadPose, direction: ChallengeDirection) -> MotionResult:
        """
        Feed one frame's pose and judge the current window.

        Args:
            pose: Pose of the selected face for this frame.
            direction: Direction the active challenge asks for.

        Returns:
            MotionResult; progress is reported even when the turn is not valid yet.
        """
        self._is_started = True
        self.pose_history.append(pose)

        if len(self.pose_history) < self.min_samples:
            return MotionResult(is_valid=False, progress=0.0)

        return self._validate(direction)

    def _validate(self, direction: ChallengeDirection) -> MotionResult:
        values = self._axis_values(direction)
        expected_sign = EXPECTED_SIGN[direction]
        deltas = [values[i] - values[i - 1] for i in range(1, len(values))]

        # Anti photo-swap: takes priority over everything else
        if any(abs(delta) > self.max_frame_delta for delta in deltas):
            logger.debug(f"Jump rejected in {direction.name} window: max delta {max(abs(d) for d in deltas):.3f}")
            return MotionResult(is_valid=False, progress=0.0, rejection_reason=SUDDEN_MOVEMENT_REASON)

        total_displacement = (values[-1] - values[0]) * expected_sign

        correct_direction_count = sum(1 for delta in deltas if delta * expected_sign > 0)
        directional_ratio = correct_direction_count / len(deltas)

        min_displacement = self.min_displacement(direction)
        progress = min(1.0, max(0.0, total_displacement / min_displacement))

        is_valid = total_displacement >= min_displacement and directional_ratio >= self.min_directional_ratio
        return MotionResult(is_valid=is_valid, progress=progress)

    def _axis_values(self, direction: ChallengeDirection) -> List[float]:
        if direction.is_horizontal:
            return [pose.yaw for pose in self.pose_history]
        return [pose.pitch for pose in self.pose_history]
