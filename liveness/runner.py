"""
Live camera liveness session.

    python -m liveness.runner
"""

import logging
import sys
import time
from typing import Any, Callable, Optional

import cv2

from . import config
from .errors import ResourceAcquisitionError
from .landmarker import LandmarkerLease, LandmarkerPool
from .orchestrator import ChallengeOrchestrator, LivenessState, OverallStatus

logger = logging.getLogger(__name__)

# Consecutive failed camera reads before the session is abandoned
MAX_READ_FAILURES = 30


def open_camera(
    index: int = config.CAMERA_INDEX,
    width: int = config.CAMERA_WIDTH,
    height: int = config.CAMERA_HEIGHT,
) -> Any:
    """Open the capture device. Raises ResourceAcquisitionError."""
    capture = cv2.VideoCapture(index)
    if not capture.isOpened():
        capture.release()
        raise ResourceAcquisitionError(f"Could not open camera {index}")
    capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    return capture


class LiveSessionRunner:
    """
    Runs one challenge session against a live camera.

    Camera and landmarker lease are acquired when run() starts and released
    on every exit path: success, failure, stop() or an exception.
    """

    def __init__(
        self,
        orchestrator: ChallengeOrchestrator,
        pool: LandmarkerPool,
        camera_factory: Callable[[], Any] = open_camera,
        clock: Optional[Callable[[], float]] = None,
        auto_start: bool = True,
    ):
        self.orchestrator = orchestrator
        self.pool = pool
        self.camera_factory = camera_factory
        self.clock = clock or (lambda: time.monotonic() * 1000.0)
        self.auto_start = auto_start
        self._capture = None
        self._lease: Optional[LandmarkerLease] = None
        self._stop_requested = False

    @property
    def is_holding_resources(self) -> bool:
        return self._capture is not None or self._lease is not None

    def stop(self) -> None:
        """Halt the loop after the current tick."""
        self._stop_requested = True

    def run(self, max_frames: Optional[int] = None) -> LivenessState:
        """
        Acquire resources, tick until the session ends, then release them.

        Args:
            max_frames: Optional cap on processed ticks.

        Returns:
            The final snapshot.
        """
        self._stop_requested = False
        try:
            try:
                self._acquire()
            except ResourceAcquisitionError as e:
                return self.orchestrator.mark_load_failed(str(e))

            self.orchestrator.mark_ready()
            if self.auto_start:
                self.orchestrator.start_challenge()

            ticks = 0
            read_failures = 0
            while not self._stop_requested and self.orchestrator.state.overall_status in (
                OverallStatus.READY,
                OverallStatus.RUNNING,
            ):
                if max_frames is not None and ticks >= max_frames:
                    break
                ticks += 1

                ok, frame = self._capture.read()
                if not ok:
                    read_failures += 1
                    if read_failures >= MAX_READ_FAILURES:
                        logger.error("Camera stopped delivering frames")
                        return self.orchestrator.mark_load_failed("Camera stopped delivering frames")
                    continue
                read_failures = 0

                now = self.clock()
                try:
                    detection = self._lease.detect(frame, now)
                except Exception as e:
                    # Transient inference failure: skip this tick
                    logger.warning(f"Face detection failed on tick {ticks}: {e}")
                    continue

                self.orchestrator.process_detection(
                    detection.landmark_sets, detection.expression_score_sets, now_ms=now
                )

            return self.orchestrator.state
        finally:
            self._release()

    def _acquire(self) -> None:
        self._lease = self.pool.acquire()
        self._capture = self.camera_factory()

    def _release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        if self._lease is not None:
            self._lease.release()
            self._lease = None
        logger.info("Camera and landmarker released")


def main(pool: Optional[LandmarkerPool] = None, camera_factory: Callable[[], Any] = open_camera) -> int:
    logging.basicConfig(level=config.LOG_LEVEL)
    orchestrator = ChallengeOrchestrator()
    runner = LiveSessionRunner(orchestrator, pool or LandmarkerPool(), camera_factory=camera_factory)

    last_message = None

    def report(state: LivenessState) -> None:
        nonlocal last_message
        if state.feedback_message != last_message:
            last_message = state.feedback_message
            logger.info(f"[step {state.current_step_index + 1}/{len(orchestrator.sequence)}] {last_message}")

    orchestrator.subscribe(report)
    try:
        state = runner.run()
    except KeyboardInterrupt:
        logger.info("Session interrupted")
        return 1
    return 0 if state.overall_status is OverallStatus.SUCCESS else 1


if __name__ == "__main__":
    sys.exit(main())
