import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence

from . import config
from .blink_detector import BlinkDetector
from .errors import SessionStateError
from .face_selector import SelectedFace, select_largest_face
from .models.challenges import (
    BlinkStep,
    CenterStep,
    ChallengeGenerator,
    ChallengeStep,
    HeadStep,
    instruction_for,
)
from .motion_validator import MotionValidator
from .pose import extract_head_pose

logger = logging.getLogger(__name__)

LOADING_MESSAGE = "Loading face detection models..."
READY_MESSAGE = "Ready! Press Start to begin verification"
RESET_MESSAGE = "Press Start to begin verification"
NO_FACE_MESSAGE = "No face detected, look at the camera"
TIMEOUT_MESSAGE = "Time expired, please try again"
CENTERING_MESSAGE = "Hold still, centering..."
CENTERED_MESSAGE = "Centered!"
MOVEMENT_DETECTED_MESSAGE = "Movement detected!"
BLINK_DETECTED_MESSAGE = "Blink detected!"
STEP_COMPLETE_MESSAGE = "Step complete!"
SUCCESS_MESSAGE = "Liveness confirmed"


class OverallStatus(Enum):
    LOADING = "loading"
    READY = "ready"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class StepStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class LivenessState:
    """Read-only snapshot handed to the presentation layer after every tick."""
    overall_status: OverallStatus
    current_step_index: int
    step_status: StepStatus
    feedback_message: str
    motion_progress: float
    is_face_detected: bool
    time_remaining: float
    frame_count: int
    total_steps: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["overall_status"] = self.overall_status.value
        data["step_status"] = self.step_status.value
        return data


@dataclass
class SessionState:
    """The single mutable record of a running challenge session."""
    overall_status: OverallStatus
    feedback_message: str
    time_remaining: float
    current_step_index: int = 0
    step_status: StepStatus = StepStatus.PENDING
    motion_progress: float = 0.0
    is_face_detected: bool = False
    step_started_at_ms: float = 0.0
    advance_at_ms: Optional[float] = None
    center_frames: int = 0
    frame_count: int = 0


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class ChallengeOrchestrator:
    """
    Drives one challenge session: sequences the steps, dispatches each frame
    to the right validator, enforces the per-step timeout and aggregates the
    verdict.

    Any sudden-movement rejection or step timeout fails the whole session.
    The only way out of SUCCESS or FAILED is reset() or start_challenge().
    """

    def __init__(
        self,
        sequence: Optional[Sequence[ChallengeStep]] = None,
        clock: Optional[Callable[[], float]] = None,
        ready: bool = False,
        motion_validator: Optional[MotionValidator] = None,
        blink_detector: Optional[BlinkDetector] = None,
        step_timeout_ms: float = config.STEP_TIMEOUT_MS,
        advance_pause_ms: float = config.STEP_ADVANCE_PAUSE_MS,
        center_yaw_threshold: float = config.CENTER_YAW_THRESHOLD,
        center_pitch_threshold: float = config.CENTER_PITCH_THRESHOLD,
        center_hold_frames: int = config.CENTER_HOLD_FRAMES,
    ):
        """
        Args:
            sequence: Challenge steps; a random sequence is generated when omitted.
            clock: Returns the current time in milliseconds (monotonic by default).
            ready: Whether camera and model are already available.
        """
        self.sequence: List[ChallengeStep] = list(sequence) if sequence is not None else ChallengeGenerator().generate()
        if not self.sequence:
            raise ValueError("Challenge sequence must contain at least one step.")

        self.clock = clock or _monotonic_ms
        self.motion_validator = motion_validator or MotionValidator()
        self.blink_detector = blink_detector or BlinkDetector()
        self.step_timeout_ms = step_timeout_ms
        self.advance_pause_ms = advance_pause_ms
        self.center_yaw_threshold = center_yaw_threshold
        self.center_pitch_threshold = center_pitch_threshold
        self.center_hold_frames = center_hold_frames

        self._listeners: List[Callable[[LivenessState], None]] = []
        self._resources_ready = ready
        self.session = SessionState(
            overall_status=OverallStatus.READY if ready else OverallStatus.LOADING,
            feedback_message=READY_MESSAGE if ready else LOADING_MESSAGE,
            time_remaining=self.step_timeout_ms / 1000,
        )
        self._state = self._project()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    @property
    def state(self) -> LivenessState:
        return self._state

    @property
    def current_step(self) -> ChallengeStep:
        return self.sequence[self.session.current_step_index]

    def subscribe(self, callback: Callable[[LivenessState], None]) -> Callable[[], None]:
        """Register a listener for new snapshots. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _project(self) -> LivenessState:
        s = self.session
        return LivenessState(
            overall_status=s.overall_status,
            current_step_index=s.current_step_index,
            step_status=s.step_status,
            feedback_message=s.feedback_message,
            motion_progress=s.motion_progress,
            is_face_detected=s.is_face_detected,
            time_remaining=s.time_remaining,
            frame_count=s.frame_count,
            total_steps=len(self.sequence),
        )

    def _publish(self) -> LivenessState:
        self._state = self._project()
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def mark_ready(self) -> LivenessState:
        """Camera and model are available; the session can be started."""
        self._resources_ready = True
        self.session.overall_status = OverallStatus.READY
        self.session.feedback_message = READY_MESSAGE
        return self._publish()

    def mark_load_failed(self, reason: str) -> LivenessState:
        """Camera or model could not be acquired. Terminal until restarted."""
        self._resources_ready = False
        logger.error(f"Initialization failed: {reason}")
        self.session.overall_status = OverallStatus.FAILED
        self.session.feedback_message = f"Initialization failed: {reason}"
        return self._publish()

    def start_challenge(self) -> LivenessState:
        """Start (or restart) the session. A no-op while already running."""
        if self.session.overall_status is OverallStatus.RUNNING:
            return self._state
        if not self._resources_ready:
            raise SessionStateError("Cannot start the challenge before the face landmarker and camera are ready.")

        self._reset_validators()
        self.session = SessionState(
            overall_status=OverallStatus.RUNNING,
            step_status=StepStatus.ACTIVE,
            feedback_message=instruction_for(self.sequence[0]),
            time_remaining=self.step_timeout_ms / 1000,
            step_started_at_ms=self.clock(),
        )
        logger.info(f"Challenge started with {len(self.sequence)} steps: {[s.kind for s in self.sequence]}")
        return self._publish()

    def reset(self) -> LivenessState:
        """Discard all session state and go back to READY (or LOADING without resources)."""
        self._reset_validators()
        self.session = SessionState(
            overall_status=OverallStatus.READY if self._resources_ready else OverallStatus.LOADING,
            feedback_message=RESET_MESSAGE if self._resources_ready else LOADING_MESSAGE,
            time_remaining=self.step_timeout_ms / 1000,
        )
        return self._publish()

    def _reset_validators(self) -> None:
        self.motion_validator.reset()
        self.blink_detector.reset()

    # ------------------------------------------------------------------
    # Per-frame processing
    # ------------------------------------------------------------------
    def process_detection(
        self,
        landmark_sets: Sequence[Any],
        expression_score_sets: Optional[Sequence[Optional[Mapping[str, float]]]] = None,
        now_ms: Optional[float] = None,
    ) -> LivenessState:
        """Select the closest face from a detection result and process it."""
        return self.process_frame(select_largest_face(landmark_sets, expression_score_sets), now_ms)

    def process_frame(self, face: Optional[SelectedFace], now_ms: Optional[float] = None) -> LivenessState:
        """
        Run one scheduling tick.

        Args:
            face: The selected face for this frame, or None when nobody was detected.
            now_ms: Current time in milliseconds; defaults to the orchestrator's clock.

        Returns:
            The snapshot after this tick.
        """
        now = self.clock() if now_ms is None else now_ms
        # Raises LandmarkSetError before any session state changes
        pose = extract_head_pose(face.landmarks) if face is not None else None
        s = self.session
        s.is_face_detected = face is not None

        if s.overall_status is not OverallStatus.RUNNING:
            return self._publish()

        s.frame_count += 1
        if s.advance_at_ms is not None and now >= s.advance_at_ms:
            self._enter_next_step()

        if face is None:
            if s.step_status is StepStatus.ACTIVE:
                s.feedback_message = NO_FACE_MESSAGE
            return self._publish()

        if s.advance_at_ms is not None:
            # Brief pause after a completed step; nothing to judge yet
            return self._publish()

        elapsed = now - s.step_started_at_ms
        if elapsed > self.step_timeout_ms:
            self._fail(TIMEOUT_MESSAGE)
            return self._publish()
        s.time_remaining = max(0.0, (self.step_timeout_ms - elapsed) / 1000)

        step = self.current_step
        if s.frame_count % 10 == 0:
            logger.debug(
                f"Frame {s.frame_count}: step={s.current_step_index} ({step.kind}), "
                f"yaw={pose.yaw:.3f}, pitch={pose.pitch:.3f}, elapsed={elapsed:.0f}ms"
            )

        if isinstance(step, CenterStep):
            self._process_center(pose, now)
        elif isinstance(step, HeadStep):
            self._process_head(step, pose, now)
        elif isinstance(step, BlinkStep):
            self._process_blink(step, face, now)
        else:
            raise TypeError(f"Unhandled challenge step: {step!r}")

        return self._publish()

    def _process_center(self, pose, now: float) -> None:
        s = self.session
        is_centered = abs(pose.yaw) < self.center_yaw_threshold and abs(pose.pitch) < self.center_pitch_threshold
        if not is_centered:
            s.center_frames = 0
            s.motion_progress = 0.0
            s.feedback_message = instruction_for(self.current_step)
            return

        s.center_frames += 1
        s.motion_progress = min(1.0, s.center_frames / self.center_hold_frames)
        s.feedback_message = CENTERING_MESSAGE if s.motion_progress < 1 else CENTERED_MESSAGE
        if s.center_frames >= self.center_hold_frames:
            self._advance(now)

    def _process_head(self, step: HeadStep, pose, now: float) -> None:
        s = self.session
        result = self.motion_validator.add_frame(pose, step.direction)
        if result.rejection_reason:
            self._fail(result.rejection_reason)
            return

        s.motion_progress = result.progress
        if result.is_valid:
            s.feedback_message = MOVEMENT_DETECTED_MESSAGE
            self._advance(now)
        else:
            s.feedback_message = instruction_for(step)

    def _process_blink(self, step: BlinkStep, face: SelectedFace, now: float) -> None:
        s = self.session
        if self.blink_detector.add_frame(face.expression_scores):
            s.motion_progress = 1.0
            s.feedback_message = BLINK_DETECTED_MESSAGE
            self._advance(now)
        else:
            s.feedback_message = instruction_for(step)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _advance(self, now: float) -> None:
        s = self.session
        s.step_status = StepStatus.SUCCESS
        s.motion_progress = 1.0
        logger.info(f"Step {s.current_step_index} ({self.current_step.kind}) passed")

        if s.current_step_index + 1 >= len(self.sequence):
            s.overall_status = OverallStatus.SUCCESS
            s.feedback_message = SUCCESS_MESSAGE
            logger.info(f"Liveness confirmed after {s.frame_count} frames")
            return

        s.feedback_message = STEP_COMPLETE_MESSAGE
        s.advance_at_ms = now + self.advance_pause_ms

    def _enter_next_step(self) -> None:
        s = self.session
        self._reset_validators()
        s.current_step_index += 1
        s.step_status = StepStatus.ACTIVE
        s.center_frames = 0
        s.motion_progress = 0.0
        s.step_started_at_ms = s.advance_at_ms
        s.advance_at_ms = None
        s.time_remaining = self.step_timeout_ms / 1000
        s.feedback_message = instruction_for(self.current_step)

    def _fail(self, reason: str) -> None:
        s = self.session
        s.overall_status = OverallStatus.FAILED
        s.step_status = StepStatus.FAILED
        s.feedback_message = reason
        s.motion_progress = 0.0
        logger.info(f"Challenge failed at step {s.current_step_index} ({self.current_step.kind}): {reason}")
