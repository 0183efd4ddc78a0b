"""
MOOMA Exercise Service Router

Endpoints for the pregnancy exercise catalog, trimester programs and
live exercise sessions. Live sessions run over a WebSocket that accepts
either landmark lists (pose detected in the browser) or JPEG frames
(pose detected here with MediaPipe).
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

import cv2
import numpy as np
from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from .models import (
    BreathingState,
    BreathingTimer,
    ExerciseCategory,
    ExerciseHistoryStore,
    ExerciseSession,
    Landmark,
    PoseSourceUnavailableError,
    EXERCISE_LIBRARY,
    calculate_pregnancy_metrics,
    extract_metrics,
    get_exercise_by_id,
    get_exercises_for_trimester,
    get_rep_config,
    get_trimester_program,
    landmarks_from_payload,
    trimester_for_week,
)
from .models.pose_utils import NUM_LANDMARKS

router = APIRouter()
logger = logging.getLogger("mooma.exercise")


# Service instances (singleton pattern)
_history_store: Optional[ExerciseHistoryStore] = None


def get_history_store() -> ExerciseHistoryStore:
    """Get or initialize the exercise history store."""
    global _history_store
    if _history_store is None:
        _history_store = ExerciseHistoryStore()
    return _history_store


def create_pose_detector():
    """
    Open a MediaPipe pose detector for one camera stream.

    Raises:
        PoseSourceUnavailableError: MediaPipe or its model is unavailable
    """
    try:
        from .models.pose_detector import PoseDetector
    except ImportError as e:
        raise PoseSourceUnavailableError(f"MediaPipe is not available: {e}") from e
    return PoseDetector()


def _get_exercise_or_404(exercise_id: str):
    exercise = get_exercise_by_id(exercise_id)
    if exercise is None:
        raise HTTPException(status_code=404, detail=f"Exercise '{exercise_id}' not found")
    return exercise


# ============= Pydantic Models =============

class LandmarkPayload(BaseModel):
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0


class ValidateFrameRequest(BaseModel):
    landmarks: List[LandmarkPayload] = Field(default_factory=list)


# ============= Catalog Endpoints =============

@router.get("/exercises")
async def list_exercises(trimester: Optional[int] = None, category: Optional[str] = None):
    """Get the exercise catalog, optionally filtered by trimester and category."""
    if trimester is not None:
        if trimester not in (1, 2, 3):
            raise HTTPException(status_code=400, detail="Trimester must be 1, 2 or 3")
        exercises = get_exercises_for_trimester(trimester)
    else:
        exercises = list(EXERCISE_LIBRARY)

    if category:
        try:
            wanted = ExerciseCategory(category)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid category. Valid categories: {[c.value for c in ExerciseCategory]}"
            )
        exercises = [e for e in exercises if e.category == wanted]

    return {
        "exercises": [e.to_dict() for e in exercises],
        "total": len(exercises),
        "categories": [c.value for c in ExerciseCategory],
    }


@router.get("/exercises/{exercise_id}")
async def get_exercise(exercise_id: str):
    """Get one exercise definition."""
    return _get_exercise_or_404(exercise_id).to_dict()


@router.get("/exercises/{exercise_id}/tracking")
async def get_exercise_tracking(exercise_id: str):
    """How the exercise is counted: phase thresholds, breathing durations or a timed hold."""
    exercise = _get_exercise_or_404(exercise_id)
    config = get_rep_config(exercise.id)
    if config is None:
        raise HTTPException(status_code=404, detail=f"No tracking config for '{exercise_id}'")
    return {"exercise_id": exercise.id, **config.to_dict()}


@router.get("/program")
async def get_program(
    week: Optional[int] = Query(default=None, ge=0),
    hpht: Optional[str] = Query(default=None, description="DD-MM-YYYY"),
):
    """Trimester program from a pregnancy week or an HPHT date."""
    pregnancy = None
    if hpht:
        try:
            pregnancy = calculate_pregnancy_metrics(hpht)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        trimester = pregnancy.trimester
    elif week is not None:
        trimester = trimester_for_week(week)
    else:
        raise HTTPException(status_code=400, detail="Provide either 'week' or 'hpht'")

    exercises = get_trimester_program(trimester)
    return {
        "trimester": trimester,
        "pregnancy": pregnancy.to_dict() if pregnancy else None,
        "exercises": [e.to_dict() for e in exercises],
        "total": len(exercises),
    }


@router.post("/exercises/{exercise_id}/validate")
async def validate_frame(exercise_id: str, request: ValidateFrameRequest):
    """Check a single landmark frame against the exercise's form rules."""
    exercise = _get_exercise_or_404(exercise_id)
    if len(request.landmarks) > NUM_LANDMARKS:
        raise HTTPException(
            status_code=400,
            detail=f"Expected at most {NUM_LANDMARKS} landmarks, got {len(request.landmarks)}"
        )

    landmarks = [Landmark(**p.model_dump()) for p in request.landmarks]
    validation = exercise.validate(landmarks)
    metrics = extract_metrics(landmarks)

    return {
        "exercise_id": exercise.id,
        **validation.to_dict(),
        "metrics": metrics.to_dict() if metrics else None,
    }


# ============= Tutorial Endpoints =============

@router.get("/tutorial/{user_id}/{exercise_id}")
async def get_tutorial_status(user_id: str, exercise_id: str):
    """Whether the user has already seen this exercise's tutorial."""
    exercise = _get_exercise_or_404(exercise_id)
    return {
        "user_id": user_id,
        "exercise_id": exercise.id,
        "viewed": get_history_store().has_viewed_tutorial(user_id, exercise.id),
    }


@router.post("/tutorial/{user_id}/{exercise_id}")
async def mark_tutorial_viewed(user_id: str, exercise_id: str):
    """Remember that the tutorial was shown."""
    exercise = _get_exercise_or_404(exercise_id)
    get_history_store().mark_tutorial_viewed(user_id, exercise.id)
    return {"user_id": user_id, "exercise_id": exercise.id, "viewed": True}


# ============= Live Session WebSocket =============

@router.websocket("/ws/session/{exercise_id}")
async def exercise_session_stream(websocket: WebSocket, exercise_id: str, user_id: Optional[str] = None):
    """
    Real-time exercise session.

    Client -> server:
        {"type": "landmarks", "landmarks": [...], "timestamp": ms}
        binary JPEG frame
        {"type": "pause" | "resume" | "restart" | "finish"}

    Server -> client:
        SESSION_STARTED, FRAME_RESULT, NO_POSE, BREATHING_STATE,
        SESSION_COMPLETED, ERROR
    """
    await websocket.accept()

    exercise = get_exercise_by_id(exercise_id)
    if exercise is None:
        await websocket.send_json({
            "type": "ERROR",
            "message": f"Exercise '{exercise_id}' not found"
        })
        await websocket.close()
        return

    session = ExerciseSession(exercise, user_id=user_id)
    timer: Optional[BreathingTimer] = None
    detector = None
    stream_started = time.monotonic()
    last_breathing: Dict[str, Any] = {}

    async def send_breathing(state: BreathingState):
        payload = state.to_dict()
        key = {"phase": payload["phase"], "countdown": payload["countdown"], "cycles": payload["cycles"]}
        if key == last_breathing and not state.rep_completed:
            return
        last_breathing.clear()
        last_breathing.update(key)
        await websocket.send_json({
            "type": "BREATHING_STATE",
            **payload,
            "target_reps": exercise.target_reps,
            "target_reached": session.target_reached(),
        })

    async def send_frame_result(landmarks: Optional[List[Landmark]], timestamp: Optional[float]):
        result = session.process_frame(landmarks, timestamp=timestamp)
        if result is None:
            return
        await websocket.send_json({
            "type": "FRAME_RESULT" if result.visible else "NO_POSE",
            **result.to_dict()
        })

    try:
        session.start()
        await websocket.send_json({
            "type": "SESSION_STARTED",
            "exercise": exercise.to_dict(),
            "tracking": session.config.to_dict(),
            "user_id": user_id,
        })

        if session.breathing_guide is not None:
            timer = BreathingTimer(session.breathing_guide, on_tick=send_breathing)
            timer.start()

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            # Camera frame
            if message.get("bytes") is not None:
                frame = cv2.imdecode(np.frombuffer(message["bytes"], np.uint8), cv2.IMREAD_COLOR)
                if frame is None:
                    await websocket.send_json({"type": "ERROR", "message": "Invalid image frame"})
                    continue
                if detector is None:
                    detector = create_pose_detector()
                timestamp_ms = (time.monotonic() - stream_started) * 1000
                rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                await send_frame_result(detector.detect(rgb, timestamp_ms), timestamp_ms)
                continue

            try:
                data = json.loads(message.get("text") or "")
            except json.JSONDecodeError:
                await websocket.send_json({"type": "ERROR", "message": "Invalid JSON"})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"type": "ERROR", "message": "Expected a JSON object"})
                continue

            msg_type = data.get("type")

            if msg_type == "landmarks":
                try:
                    landmarks = landmarks_from_payload(data.get("landmarks") or [])
                except ValueError as e:
                    await websocket.send_json({"type": "ERROR", "message": str(e)})
                    continue
                timestamp = data.get("timestamp")
                if timestamp is not None and not isinstance(timestamp, (int, float)):
                    await websocket.send_json({"type": "ERROR", "message": "timestamp must be a number"})
                    continue
                await send_frame_result(landmarks, timestamp)

            elif msg_type == "pause":
                if session.pause():
                    await websocket.send_json({"type": "SESSION_PAUSED", **session.to_dict()})
                else:
                    await websocket.send_json({"type": "ERROR", "message": "Session is not active"})

            elif msg_type == "resume":
                if session.resume():
                    await websocket.send_json({"type": "SESSION_RESUMED", **session.to_dict()})
                else:
                    await websocket.send_json({"type": "ERROR", "message": "Session is not paused"})

            elif msg_type == "restart":
                session.restart()
                last_breathing.clear()
                await websocket.send_json({
                    "type": "SESSION_STARTED",
                    "exercise": exercise.to_dict(),
                    "tracking": session.config.to_dict(),
                    "user_id": user_id,
                })

            elif msg_type == "finish":
                summary = session.finish()
                saved = get_history_store().save_summary(user_id, summary) if user_id else False
                await websocket.send_json({
                    "type": "SESSION_COMPLETED",
                    "summary": summary.to_dict(),
                    "saved": saved,
                })
                break

            else:
                await websocket.send_json({
                    "type": "ERROR",
                    "message": f"Unknown message type: {msg_type}"
                })

        await websocket.close()

    except PoseSourceUnavailableError as e:
        logger.error(f"❌ Pose source unavailable for {exercise_id}: {e}")
        await websocket.send_json({"type": "ERROR", "message": str(e), "fatal": True})
        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"🔌 Session {exercise_id} disconnected (user: {user_id})")

    finally:
        if timer is not None:
            await timer.stop()
        if detector is not None:
            detector.close()
        session.close()
