import logging
import uuid
from typing import Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import config
from .active_checker import ActiveChecker
from .errors import LandmarkSetError, ResourceAcquisitionError, SessionStateError
from .landmarker import LandmarkerPool
from .models.challenges import ChallengeGenerator, describe_step
from .orchestrator import ChallengeOrchestrator
from .video_processor import cleanup_temp_file, extract_frames, get_video_info, save_uploaded_file

# Logging setup
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Head Motion Liveness API",
    description="Challenge-response liveness detection from face landmark streams.",
    version="1.0.0",
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- In-memory session storage; nothing outlives the process ---
sessions: Dict[str, ChallengeOrchestrator] = {}
landmarker_pool = None
active_checker = None
challenge_generator = None


class FacePayload(BaseModel):
    landmarks: List[List[float]]
    blendshapes: Optional[Dict[str, float]] = None


class FramePayload(BaseModel):
    faces: List[FacePayload] = []


@app.on_event("startup")
async def startup_event():
    """Application startup initialization."""
    global landmarker_pool, active_checker, challenge_generator

    logger.info("Initializing services...")
    # The landmarker itself is only loaded when a video check needs it
    landmarker_pool = LandmarkerPool()
    active_checker = ActiveChecker(landmarker_pool)
    challenge_generator = ChallengeGenerator()
    logger.info("Services initialized.")


def get_session(session_id: str) -> ChallengeOrchestrator:
    orchestrator = sessions.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail="Invalid or expired session ID.")
    return orchestrator


def validate_video_file(file: UploadFile):
    """Validates the uploaded video file."""
    if not (file.content_type or "").startswith("video/"):
        raise HTTPException(status_code=400, detail="Invalid file type. Must be a video.")


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Head Motion Liveness API is running. See /docs for details."}


@app.get("/health")
async def health():
    return {"status": "ok", "active_sessions": len(sessions)}


@app.post("/liveness/session/start", summary="Start a new liveness session")
async def start_liveness_session() -> JSONResponse:
    """
    Creates a session with a fresh random challenge sequence and starts it.

    The client then streams per-frame landmarks to /liveness/session/{id}/frame
    and renders the returned state.
    """
    session_id = str(uuid.uuid4())
    sequence = challenge_generator.generate()

    # Landmarks are computed client-side, so there is nothing to load here
    orchestrator = ChallengeOrchestrator(sequence, ready=True)
    state = orchestrator.start_challenge()
    sessions[session_id] = orchestrator

    logger.info(f"Started session {session_id} with challenges: {[describe_step(s)['type'] for s in sequence]}")

    return JSONResponse(content={
        "session_id": session_id,
        "challenges": [describe_step(step) for step in sequence],
        "state": state.to_dict(),
    })


@app.post("/liveness/session/{session_id}/frame", summary="Process one frame of landmarks")
async def process_frame(session_id: str, payload: FramePayload) -> JSONResponse:
    orchestrator = get_session(session_id)

    landmark_sets = [face.landmarks for face in payload.faces]
    score_sets = [face.blendshapes for face in payload.faces]
    try:
        # Step timers run on the server clock; client timestamps are not trusted
        state = orchestrator.process_detection(landmark_sets, score_sets)
    except LandmarkSetError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return JSONResponse(content=state.to_dict())


@app.get("/liveness/session/{session_id}", summary="Current session state")
async def get_session_state(session_id: str) -> JSONResponse:
    orchestrator = get_session(session_id)
    return JSONResponse(content={
        "challenges": [describe_step(step) for step in orchestrator.sequence],
        "state": orchestrator.state.to_dict(),
    })


@app.post("/liveness/session/{session_id}/reset", summary="Restart a session from the first step")
async def reset_session(session_id: str) -> JSONResponse:
    orchestrator = get_session(session_id)
    orchestrator.reset()
    try:
        state = orchestrator.start_challenge()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info(f"Session {session_id} restarted.")
    return JSONResponse(content=state.to_dict())


@app.delete("/liveness/session/{session_id}", summary="Tear down a session")
async def delete_session(session_id: str) -> JSONResponse:
    get_session(session_id)
    del sessions[session_id]
    logger.info(f"Session {session_id} cleaned up.")
    return JSONResponse(content={"deleted": session_id})


@app.post("/liveness/check", summary="Verify a recorded video for a session")
async def liveness_check(
    session_id: str = Form(...),
    file: UploadFile = File(...)
) -> JSONResponse:
    """
    Replays an uploaded video through the session's challenge sequence.

    The session is consumed whatever the outcome.
    """
    orchestrator = get_session(session_id)
    challenge_sequence = orchestrator.sequence
    temp_file_path = None

    try:
        validate_video_file(file)
        temp_file_path = await save_uploaded_file(file)

        video_info = get_video_info(temp_file_path)
        if video_info["duration"] > config.MAX_VIDEO_DURATION_S:
            raise HTTPException(
                status_code=400,
                detail=f"Video duration exceeds {config.MAX_VIDEO_DURATION_S:g} second limit.",
            )

        frames = extract_frames(temp_file_path, max_frames=config.MAX_VIDEO_FRAMES)
        if not frames:
            raise HTTPException(status_code=400, detail="Could not extract frames from video.")

        logger.info(f"Session {session_id}: Starting active check on {len(frames)} frames.")
        active_result = active_checker.check(frames, challenge_sequence)

        if active_result["passed"]:
            status = "SUCCESS"
            reason = "Challenge sequence passed."
        else:
            status = "FAILURE"
            reason = f"Active challenge failed: {active_result.get('message', 'No details')}"

        return JSONResponse(content={
            "status": status,
            "reason": reason,
            "details": {"active_check": active_result},
            "video_info": video_info,
        })

    except HTTPException:
        raise
    except ResourceAcquisitionError as e:
        logger.error(f"Session {session_id}: {e}")
        raise HTTPException(status_code=503, detail=f"Initialization failed: {e}")
    except Exception as e:
        logger.error(f"Error during liveness check for session {session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An internal error occurred: {e}")
    finally:
        if session_id in sessions:
            del sessions[session_id]
            logger.info(f"Session {session_id} cleaned up.")
        if temp_file_path:
            cleanup_temp_file(temp_file_path)
            logger.info(f"Cleaned up temp file: {temp_file_path}")


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
