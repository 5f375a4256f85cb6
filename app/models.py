from typing import List, Literal, Optional, TypedDict

Speaker = Literal["Doctor", "Patient"]
SuggestionSource = Literal["batch", "on_demand"]
SessionStatusValue = Literal["active", "completed"]


class SpeakerRole:
    DOCTOR = "Doctor"
    PATIENT = "Patient"

    ALL = (DOCTOR, PATIENT)


class SessionStatus:
    ACTIVE = "active"
    COMPLETED = "completed"


class TriggerSource:
    BATCH = "batch"
    ON_DEMAND = "on_demand"

    ALL = (BATCH, ON_DEMAND)


class TriggerReason:
    PATIENT_UTTERANCE_THRESHOLD = "patient_utterance_threshold"
    TIME_THRESHOLD = "time_threshold"


class BroadcastEvent:
    TRANSCRIPT_LINE_ADDED = "transcript_line_added"
    SUGGESTION_ADDED = "suggestion_added"
    SESSION_ENDED = "session_ended"
    STT_ERROR = "stt_error"


class KnowledgeSearchResult(TypedDict):
    chunk_id: str
    document_name: str
    content: str
    category: Optional[str]
    score: float


class SuggestionItem(TypedDict):
    """A single suggestion as returned by the LLM, after sanitization."""
    content: str
    type: str
    urgency: str
    confidence: float


class PatientApiResponse(TypedDict, total=False):
    dateOfBirth: Optional[str]
    gender: Optional[str]
    allergies: Optional[List[str]]
    activeMedications: Optional[List[str]]
    chronicConditions: Optional[List[str]]
    recentVisitReason: Optional[str]
