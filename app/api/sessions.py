from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, HTTPException, Response

from app.core import runtime
from app.core.errors import SessionAlreadyEnded, SessionNotFound
from app.models import SpeakerRole
from app.storage.session_store import load_suggestions

router = APIRouter(prefix="/sessions", tags=["sessions"])


@dataclass
class StartSessionRequest:
    doctor_id: str
    patient_id: Optional[str] = None


@dataclass
class TranscriptRequest:
    text: str
    speaker: Optional[str] = None
    confidence: Optional[float] = None


def _normalize_speaker(speaker: Optional[str]) -> Optional[str]:
    if speaker is None or not speaker.strip():
        return None
    value = speaker.strip().capitalize()
    if value not in SpeakerRole.ALL:
        raise HTTPException(status_code=400, detail=f"Unknown speaker: {speaker}")
    return value


@router.post("", status_code=201)
async def start_session(body: StartSessionRequest):
    try:
        session = await runtime.sessions.start_session(body.doctor_id, body.patient_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return session.to_dict()


@router.get("/{session_id}")
async def get_session(session_id: str):
    try:
        session = runtime.sessions.get_session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")

    return session.to_dict()


@router.post("/{session_id}/transcript")
async def add_transcript_line(session_id: str, body: TranscriptRequest):
    speaker = _normalize_speaker(body.speaker)

    try:
        line = await runtime.sessions.add_transcript_line(
            session_id,
            body.text,
            speaker=speaker,
            confidence=body.confidence,
        )
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except SessionAlreadyEnded:
        raise HTTPException(status_code=400, detail="Session is already ended")

    if line is None:
        return Response(status_code=204)

    return line.to_dict()


@router.post("/{session_id}/suggest")
async def request_suggestions(session_id: str):
    try:
        suggestions = await runtime.sessions.request_suggestions(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")

    return {
        "session_id": session_id,
        "suggestions": [s.to_dict() for s in suggestions],
    }


@router.get("/{session_id}/suggestions")
async def list_suggestions(session_id: str):
    try:
        runtime.sessions.get_session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")

    suggestions = sorted(load_suggestions(session_id), key=lambda s: s.triggered_at, reverse=True)
    return [s.to_dict() for s in suggestions]


@router.post("/{session_id}/end")
async def end_session(session_id: str):
    try:
        session = await runtime.sessions.end_session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except SessionAlreadyEnded:
        raise HTTPException(status_code=400, detail="Session is already ended")

    return session.to_dict()
