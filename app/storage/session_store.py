import json
from pathlib import Path
from typing import Any, Dict, List

from app.config import settings
from app.core.session_models import Suggestion, TranscriptLine

BASE_DIR = settings.DATA_DIR / "sessions"

SUGGESTIONS_FILE = "suggestions.jsonl"


def _session_dir(session_id: str) -> Path:
    session_dir = BASE_DIR / session_id
    session_dir.mkdir(parents=True, exist_ok=True)
    return session_dir


def store_suggestions(session_id: str, suggestions: List[Suggestion]) -> None:
    if not suggestions:
        return

    path = _session_dir(session_id) / SUGGESTIONS_FILE
    with path.open("a", encoding="utf-8") as f:
        for suggestion in suggestions:
            f.write(json.dumps(suggestion.to_dict(), ensure_ascii=False) + "\n")


def load_suggestions(session_id: str) -> List[Suggestion]:
    path = BASE_DIR / session_id / SUGGESTIONS_FILE
    if not path.exists():
        return []

    out: List[Suggestion] = []
    with path.open(encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                out.append(Suggestion.from_dict(json.loads(line)))
    return out


def store_transcript(session_id: str, transcript: List[TranscriptLine]) -> None:
    path = _session_dir(session_id) / "transcript.json"
    path.write_text(
        json.dumps([line.to_dict() for line in transcript], ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def store_metadata(session_id: str, metadata: Dict[str, Any]) -> None:
    path = _session_dir(session_id) / "metadata.json"
    path.write_text(json.dumps(metadata, ensure_ascii=False, indent=2), encoding="utf-8")
