from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field, ValidationError

from ..auth import operator_required
from ..events import session_events
from ...recorder.recording_loader import MalformedInputError
from ...services.field_partition import MoveError
from ...services.password_options import PasswordOptions
from ...services.payload_service import NotReady
from ...services.rotation_session import NoRecordingLoaded, RotationSession, SessionNotFound, SessionStore

logger = logging.getLogger(__name__)

MAX_RECORDING_BYTES = int(os.getenv("ROTATOR_MAX_RECORDING_BYTES", str(5 * 1024 * 1024)))

sessions = SessionStore(max_sessions=int(os.getenv("ROTATOR_MAX_SESSIONS", "64")))

router = APIRouter(prefix="/rotation", tags=["rotation"], dependencies=[Depends(operator_required)])


def get_session_store() -> SessionStore:
    return sessions


def _session(session_id: str, store: SessionStore) -> RotationSession:
    try:
        return store.get(session_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}") from exc


class SessionCreateRequest(BaseModel):
    options: Dict[str, Any] = Field(default_factory=dict, description="Overrides for the default generation options.")


class MoveRequest(BaseModel):
    fieldId: str = Field(..., description="Field identifier as listed in the session buckets.")
    sourceBucket: str
    sourceIndex: int
    destBucket: str
    destIndex: int


class PayloadResponse(BaseModel):
    payload: Dict[str, Any]
    text: str = Field(..., description="Pretty-printed payload, ready for the clipboard.")


@router.post("/sessions", status_code=201)
async def create_session(
    req: Optional[SessionCreateRequest] = None,
    store: SessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    options = PasswordOptions()
    if req and req.options:
        try:
            options = options.with_updates(req.options)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc
    session = store.create(options=options, max_recording_bytes=MAX_RECORDING_BYTES)
    logger.info("Created rotation session %s", session.session_id)
    return session.snapshot()


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, store: SessionStore = Depends(get_session_store)) -> Dict[str, Any]:
    return _session(session_id, store).snapshot()


@router.delete("/sessions/{session_id}")
async def discard_session(session_id: str, store: SessionStore = Depends(get_session_store)) -> Dict[str, str]:
    try:
        store.discard(session_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}") from exc
    session_events.publish(session_id, "discarded")
    return {"status": "discarded", "sessionId": session_id}


@router.post("/sessions/{session_id}/recording")
async def upload_recording(
    session_id: str,
    recording: UploadFile = File(...),
    store: SessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    """Replace the session recording. Any previous mapping and payload are dropped."""
    session = _session(session_id, store)
    # One byte past the limit is enough for the loader to reject an oversized upload.
    raw = await recording.read(MAX_RECORDING_BYTES + 1)
    try:
        await session.load(raw)
    except MalformedInputError as exc:
        logger.info("Rejected recording %r for session %s: %s", recording.filename, session_id, exc)
        raise HTTPException(
            status_code=400,
            detail=f"Error parsing recording file. Please ensure it's a valid recording JSON. ({exc})",
        ) from exc
    snapshot = session.snapshot()
    session_events.publish(session_id, "loaded", snapshot)
    return snapshot


@router.post("/sessions/{session_id}/moves")
async def move_field(req: MoveRequest, session_id: str, store: SessionStore = Depends(get_session_store)) -> Dict[str, Any]:
    session = _session(session_id, store)
    try:
        session.move(req.fieldId, req.sourceBucket, req.sourceIndex, req.destBucket, req.destIndex)
    except NoRecordingLoaded as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except MoveError as exc:
        raise HTTPException(
            status_code=409,
            detail={
                "code": exc.code,
                "message": str(exc),
                "details": exc.details,
                "buckets": session.buckets_view(),
            },
        ) from exc
    snapshot = session.snapshot()
    session_events.publish(session_id, "moved", snapshot)
    return snapshot


@router.get("/sessions/{session_id}/ready")
async def readiness(session_id: str, store: SessionStore = Depends(get_session_store)) -> Dict[str, Any]:
    session = _session(session_id, store)
    return session.readiness().to_dict()


@router.get("/options/schema")
async def options_schema() -> Dict[str, Any]:
    return {"options": PasswordOptions.describe()}


@router.put("/sessions/{session_id}/options")
async def update_options(
    changes: Dict[str, Any],
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    session = _session(session_id, store)
    try:
        options = session.update_options(changes)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc
    session_events.publish(session_id, "optionsUpdated", session.snapshot())
    return {"options": options.model_dump()}


@router.post("/sessions/{session_id}/payload", response_model=PayloadResponse)
async def generate_payload(session_id: str, store: SessionStore = Depends(get_session_store)) -> PayloadResponse:
    session = _session(session_id, store)
    try:
        payload = session.synthesize()
    except NoRecordingLoaded as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except NotReady as exc:
        raise HTTPException(status_code=409, detail=exc.report.to_dict()) from exc
    session_events.publish(session_id, "synthesized", session.snapshot())
    return PayloadResponse(payload=payload.to_dict(), text=payload.to_json())
