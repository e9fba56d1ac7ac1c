import logging
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from .landmarker import LandmarkerPool
from .models.challenges import ChallengeStep, describe_step
from .orchestrator import ChallengeOrchestrator, OverallStatus, StepStatus

logger = logging.getLogger(__name__)

VIDEO_ENDED_MESSAGE = "Video ended before the challenge sequence was completed"


class ActiveChecker:
    """
    Verifies a recorded video against a challenge sequence.

    The frames are replayed through the same orchestrator used for live
    sessions, with the video's own timestamps standing in for the wall clock,
    so timeouts and pauses behave exactly as they would live.
    """

    def __init__(self, pool: LandmarkerPool):
        self.pool = pool

    def check(self, frames: List[Tuple[float, np.ndarray]], challenge_sequence: Sequence[ChallengeStep]) -> Dict[str, Any]:
        """
        Args:
            frames: ``(timestamp_ms, frame)`` pairs in playback order.
            challenge_sequence: The steps issued to the user.

        Returns:
            Result with ``passed``, ``message``, ``details`` and the last few per-frame snapshots.
        """
        if not frames:
            return {
                "passed": False,
                "message": "No frames to analyze",
                "details": {
                    "challenges_completed": 0,
                    "total_steps": len(challenge_sequence),
                    "total_frames_processed": 0,
                    "face_detection_rate": 0,
                },
            }

        start_ms = frames[0][0]
        orchestrator = ChallengeOrchestrator(challenge_sequence, clock=lambda: start_ms, ready=True)
        orchestrator.start_challenge()

        frame_results = []
        with self.pool.acquire() as lease:
            for timestamp, frame in frames:
                try:
                    detection = lease.detect(frame, timestamp)
                except Exception as e:
                    logger.warning(f"Error detecting faces at {timestamp:.0f}ms: {e}")
                    continue

                state = orchestrator.process_detection(
                    detection.landmark_sets, detection.expression_score_sets, now_ms=timestamp
                )
                frame_results.append({"timestamp_ms": timestamp, **state.to_dict()})

                if state.overall_status is not OverallStatus.RUNNING:
                    break

        final_state = orchestrator.state
        passed = final_state.overall_status is OverallStatus.SUCCESS
        if passed:
            challenges_completed = len(challenge_sequence)
            message = "Challenge sequence completed successfully."
        else:
            challenges_completed = final_state.current_step_index
            if final_state.step_status is StepStatus.SUCCESS:
                challenges_completed += 1
            failed_step = describe_step(challenge_sequence[final_state.current_step_index])
            reason = final_state.feedback_message
            if final_state.overall_status is OverallStatus.RUNNING:
                reason = VIDEO_ENDED_MESSAGE
            message = (
                f"Challenge failed at step {final_state.current_step_index + 1} "
                f"({failed_step['instruction']}): {reason}"
            )

        logger.info(f"Active check finished: passed={passed}, steps={challenges_completed}/{len(challenge_sequence)}")
        return {
            "passed": passed,
            "message": message,
            "details": {
                "challenges_completed": challenges_completed,
                "total_steps": len(challenge_sequence),
                "total_frames_processed": len(frame_results),
                "face_detection_rate": (
                    sum(1 for r in frame_results if r["is_face_detected"]) / len(frame_results)
                    if frame_results else 0
                ),
                "final_state": final_state.to_dict(),
            },
            "frame_analysis": frame_results[-10:],
        }
