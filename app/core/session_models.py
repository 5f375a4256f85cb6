from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
import asyncio
import math
import uuid

from app.models import SessionStatus, SpeakerRole, TriggerSource


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _require_aware(name: str, value: datetime) -> None:
    if value.tzinfo is None:
        raise ValueError(f"{name} must be timezone-aware")


@dataclass(frozen=True)
class TranscriptLine:
    line_id: str
    speaker: str
    text: str
    timestamp: datetime
    confidence: Optional[float] = None

    def __post_init__(self):
        if self.speaker not in SpeakerRole.ALL:
            raise ValueError(f"unknown speaker: {self.speaker!r}")
        if not self.text or not self.text.strip():
            raise ValueError("transcript line text must not be blank")
        _require_aware("timestamp", self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.line_id,
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Suggestion:
    suggestion_id: str
    session_id: str
    content: str
    type: str
    urgency: str
    confidence: float
    source: str
    triggered_at: datetime

    def __post_init__(self):
        if not self.content or not self.content.strip():
            raise ValueError("suggestion content must not be blank")
        if not self.type or not self.type.strip():
            raise ValueError("suggestion type must not be blank")
        if not self.urgency or not self.urgency.strip():
            raise ValueError("suggestion urgency must not be blank")
        if math.isnan(self.confidence) or not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        if self.source not in TriggerSource.ALL:
            raise ValueError(f"unknown suggestion source: {self.source!r}")
        _require_aware("triggered_at", self.triggered_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.suggestion_id,
            "session_id": self.session_id,
            "content": self.content,
            "type": self.type,
            "urgency": self.urgency,
            "confidence": self.confidence,
            "source": self.source,
            "triggered_at": self.triggered_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Suggestion":
        return cls(
            suggestion_id=data["id"],
            session_id=data["session_id"],
            content=data["content"],
            type=data["type"],
            urgency=data["urgency"],
            confidence=float(data["confidence"]),
            source=data["source"],
            triggered_at=datetime.fromisoformat(data["triggered_at"]),
        )


@dataclass(frozen=True)
class KnowledgeChunk:
    chunk_id: str
    document_id: str
    document_name: str
    content: str
    embedding: List[float]
    category: Optional[str] = None
    chunk_index: int = 0

    def __post_init__(self):
        if not self.content.strip():
            raise ValueError("knowledge chunk content must not be blank")
        if not self.embedding:
            raise ValueError("knowledge chunk requires an embedding")
        if self.chunk_index < 0:
            raise ValueError("chunk_index must be >= 0")


@dataclass
class PatientContext:
    """
    Minimal patient summary for suggestion prompts.
    Only what clinical decision support needs, not the full record.
    """
    patient_id: str
    age: Optional[int] = None
    gender: Optional[str] = None
    allergies: List[str] = field(default_factory=list)
    medications: List[str] = field(default_factory=list)
    conditions: List[str] = field(default_factory=list)
    recent_visit_reason: Optional[str] = None

    def to_prompt_section(self) -> str:
        parts: List[str] = []

        if self.age is not None:
            parts.append(f"Age: {self.age}")

        if self.gender and self.gender.strip():
            parts.append(f"Gender: {self.gender}")

        if self.allergies:
            parts.append(f"Allergies: {', '.join(self.allergies)}")

        if self.medications:
            parts.append(f"Current Medications: {', '.join(self.medications)}")

        if self.conditions:
            parts.append(f"Chronic Conditions: {', '.join(self.conditions)}")

        if self.recent_visit_reason and self.recent_visit_reason.strip():
            parts.append(f"Recent Visit: {self.recent_visit_reason}")

        if not parts:
            return ""

        return "## Patient Information\n" + "\n".join(parts)


@dataclass(frozen=True)
class ClinicalSkill:
    skill_id: str
    name: str
    triggers: List[str]
    content: str
    priority: int = 50

    def matches(self, lowered_text: str) -> bool:
        return any(t.lower() in lowered_text for t in self.triggers if t.strip())


@dataclass
class Session:
    session_id: str
    doctor_id: str
    patient_id: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    status: str = SessionStatus.ACTIVE

    transcript: List[TranscriptLine] = field(default_factory=list)
    suggestions: List[Suggestion] = field(default_factory=list)

    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def last_line(self) -> Optional[TranscriptLine]:
        # Stable sort: equal timestamps resolve to the later insertion
        recent = self.recent_lines(1)
        return recent[0] if recent else None

    def recent_lines(self, limit: int) -> List[TranscriptLine]:
        """Most recent `limit` lines, oldest first."""
        if limit <= 0:
            return []
        ordered = sorted(self.transcript, key=lambda line: line.timestamp)
        return ordered[-limit:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.session_id,
            "doctor_id": self.doctor_id,
            "patient_id": self.patient_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "status": self.status,
            "transcript": [line.to_dict() for line in self.recent_lines(len(self.transcript))],
            "suggestions": [
                s.to_dict()
                for s in sorted(self.suggestions, key=lambda s: s.triggered_at, reverse=True)
            ],
        }
