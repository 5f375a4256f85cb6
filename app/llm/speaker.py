from datetime import datetime
from typing import Optional

from app.config import settings
from app.core.session_models import TranscriptLine
from app.models import SpeakerRole


def opposite(speaker: str) -> str:
    return SpeakerRole.PATIENT if speaker == SpeakerRole.DOCTOR else SpeakerRole.DOCTOR


def infer_speaker(
    last_line: Optional[TranscriptLine],
    now: datetime,
    gap_seconds: Optional[float] = None,
) -> str:
    """
    Speaker for the next transcript line, from ordering and timing only.

    - No prior line: the doctor opened the session.
    - Pause longer than the gap: the other party is talking now.
    - Otherwise the same speaker continues.

    Exactly `gap_seconds` is not a change (strict >).
    """
    if last_line is None:
        return SpeakerRole.DOCTOR

    threshold = settings.SPEAKER_CHANGE_GAP_SECONDS if gap_seconds is None else gap_seconds
    gap = (now - last_line.timestamp).total_seconds()

    if gap > threshold:
        return opposite(last_line.speaker)

    return last_line.speaker
