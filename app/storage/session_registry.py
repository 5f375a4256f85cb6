from typing import Dict, List, Optional

from app.core.errors import SessionNotFound
from app.core.session_models import Session, Suggestion, TranscriptLine


class SessionRegistry:
    """
    In-memory store of live and finished sessions.
    Stands in for the relational store behind the session endpoints.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def register_session(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    def get_session(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def find_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def add_transcript_line(self, session_id: str, line: TranscriptLine) -> None:
        self.get_session(session_id).transcript.append(line)

    def add_suggestions(self, session_id: str, suggestions: List[Suggestion]) -> None:
        self.get_session(session_id).suggestions.extend(suggestions)
