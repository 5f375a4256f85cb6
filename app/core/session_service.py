import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Awaitable

from app.core.errors import SessionAlreadyEnded
from app.core.session_models import Session, Suggestion, TranscriptLine, new_id, utcnow
from app.llm.speaker import infer_speaker
from app.models import BroadcastEvent, SessionStatus, TriggerSource
from app.pipeline.scheduler import SessionBatchScheduler
from app.pipeline.suggestions import SuggestionPipeline
from app.storage import session_store
from app.storage.session_registry import SessionRegistry

logger = logging.getLogger("sessions")

TranscribeFn = Callable[[bytes], Optional[str]]
BroadcastFn = Callable[[str, Dict[str, Any]], Awaitable[None]]


async def _no_broadcast(session_id: str, event: Dict[str, Any]) -> None:
    return None


class SessionService:
    """
    Session lifecycle plus the live transcript path:
    line -> speaker inference -> store -> broadcast -> scheduler.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        scheduler: SessionBatchScheduler,
        pipeline: SuggestionPipeline,
        transcribe: Optional[TranscribeFn] = None,
        broadcast: Optional[BroadcastFn] = None,
    ):
        self.registry = registry
        self.scheduler = scheduler
        self.pipeline = pipeline
        self.transcribe = transcribe
        self.broadcast = broadcast or _no_broadcast

    async def start_session(self, doctor_id: str, patient_id: Optional[str] = None) -> Session:
        if not doctor_id or not doctor_id.strip():
            raise ValueError("doctor_id is required")

        session = Session(
            session_id=new_id(),
            doctor_id=doctor_id.strip(),
            patient_id=(patient_id or "").strip() or None,
        )
        self.registry.register_session(session)

        logger.info(
            "[SESSIONS] Session %s started for doctor %s with patient %s",
            session.session_id,
            session.doctor_id,
            session.patient_id or "anonymous",
        )
        return session

    def get_session(self, session_id: str) -> Session:
        return self.registry.get_session(session_id)

    async def add_transcript_line(
        self,
        session_id: str,
        text: str,
        speaker: Optional[str] = None,
        confidence: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[TranscriptLine]:
        session = self.registry.get_session(session_id)

        if not text or not text.strip():
            return None

        async with session.lock:
            if not session.is_active:
                raise SessionAlreadyEnded(session_id)

            now = timestamp or utcnow()
            if speaker is None:
                speaker = infer_speaker(session.last_line(), now)

            line = TranscriptLine(
                line_id=new_id(),
                speaker=speaker,
                text=text.strip(),
                timestamp=now,
                confidence=confidence,
            )
            self.registry.add_transcript_line(session_id, line)

            # Inside the lock so an end_session cannot slip in between and
            # leave trigger state behind for a finished session
            self.scheduler.on_transcript_line(session_id, line)

        await self.broadcast(
            session_id,
            {"type": BroadcastEvent.TRANSCRIPT_LINE_ADDED, "line": line.to_dict()},
        )
        return line

    async def transcribe_and_add(self, session_id: str, audio: bytes) -> Optional[TranscriptLine]:
        """
        Speech-to-text on one audio chunk. No text, or a failed
        transcription, means no line and no scheduler event. Failures are
        reported to the session's clients as an stt_error event. An ended
        session raises SessionAlreadyEnded before any audio is decoded.
        """
        if self.transcribe is None:
            raise RuntimeError("no transcriber configured")

        session = self.registry.get_session(session_id)
        if not session.is_active:
            raise SessionAlreadyEnded(session_id)

        if not audio:
            logger.debug("[SESSIONS] Empty audio chunk for session %s, skipping", session_id)
            return None

        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self.transcribe, audio)
        except Exception as e:
            logger.error("[SESSIONS] Transcription failed for session %s: %s", session_id, e)
            await self.broadcast(
                session_id,
                {"type": BroadcastEvent.STT_ERROR, "error": str(e)},
            )
            return None

        if not text or not text.strip():
            return None

        return await self.add_transcript_line(session_id, text)

    async def request_suggestions(self, session_id: str) -> List[Suggestion]:
        self.registry.get_session(session_id)

        suggestions = await self.pipeline.generate_suggestions(session_id, TriggerSource.ON_DEMAND)

        for suggestion in suggestions:
            await self.broadcast(
                session_id,
                {"type": BroadcastEvent.SUGGESTION_ADDED, "suggestion": suggestion.to_dict()},
            )
        return suggestions

    async def end_session(self, session_id: str) -> Session:
        session = self.registry.get_session(session_id)

        async with session.lock:
            if not session.is_active:
                raise SessionAlreadyEnded(session_id)

            session.status = SessionStatus.COMPLETED
            session.ended_at = utcnow()
            self.scheduler.cleanup_session(session_id)

        session_store.store_transcript(session_id, session.recent_lines(len(session.transcript)))
        session_store.store_metadata(
            session_id,
            {
                "session_id": session_id,
                "doctor_id": session.doctor_id,
                "patient_id": session.patient_id,
                "started_at": session.started_at.isoformat(),
                "ended_at": session.ended_at.isoformat(),
                "transcript_lines": len(session.transcript),
                "suggestions": len(session.suggestions),
            },
        )

        await self.broadcast(
            session_id,
            {"type": BroadcastEvent.SESSION_ENDED, "session_id": session_id},
        )

        logger.info(
            "[SESSIONS] Session %s ended for doctor %s. Duration: %s",
            session_id,
            session.doctor_id,
            session.ended_at - session.started_at,
        )
        return session
