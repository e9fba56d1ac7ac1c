from enum import Enum
from typing import Mapping, Optional

from . import config

EYE_BLINK_LEFT = "eyeBlinkLeft"
EYE_BLINK_RIGHT = "eyeBlinkRight"


class BlinkPhase(Enum):
    WAITING = "waiting"
    EYES_CLOSED = "eyes_closed"
    DETECTED = "detected"


class BlinkDetector:
    """
    Detects one full blink (both eyes close, then both reopen) from blendshape scores.

    Closing and reopening use separate thresholds so noise around a single
    cutoff cannot produce a blink, and both eyes are required so a wink does
    not pass. DETECTED is terminal until reset().
    """

    def __init__(
        self,
        closed_threshold: float = config.BLINK_CLOSED_THRESHOLD,
        open_threshold: float = config.BLINK_OPEN_THRESHOLD,
    ):
        self.closed_threshold = closed_threshold
        self.open_threshold = open_threshold
        self.phase = BlinkPhase.WAITING

    def reset(self) -> None:
        self.phase = BlinkPhase.WAITING

    @property
    def is_detected(self) -> bool:
        return self.phase is BlinkPhase.DETECTED

    def add_frame(self, expression_scores: Optional[Mapping[str, float]]) -> bool:
        """
        Feed the current frame's expression scores.

        Returns:
            True on the frame the blink completes and on every call after it.
        """
        if self.phase is BlinkPhase.DETECTED:
            return True

        if not expression_scores:
            return False

        left_score = expression_scores.get(EYE_BLINK_LEFT)
        right_score = expression_scores.get(EYE_BLINK_RIGHT)
        if left_score is None or right_score is None:
            return False

        if self.phase is BlinkPhase.WAITING:
            if left_score > self.closed_threshold and right_score > self.closed_threshold:
                self.phase = BlinkPhase.EYES_CLOSED
        elif self.phase is BlinkPhase.EYES_CLOSED:
            if left_score < self.open_threshold and right_score < self.open_threshold:
                self.phase = BlinkPhase.DETECTED
                return True

        return False
