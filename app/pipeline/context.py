import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from app.config import settings
from app.core.session_models import ClinicalSkill, PatientContext, Session, TranscriptLine
from app.models import KnowledgeSearchResult
from app.pipeline.skills import find_matching_skill

logger = logging.getLogger("context")

KnowledgeSearch = Callable[[str], Awaitable[List[KnowledgeSearchResult]]]
PatientFetch = Callable[[str], Awaitable[Optional[PatientContext]]]


@dataclass
class SuggestionContext:
    session_id: str
    conversation_text: str
    knowledge: List[KnowledgeSearchResult] = field(default_factory=list)
    patient: Optional[PatientContext] = None
    skill: Optional[ClinicalSkill] = None

    def knowledge_section(self) -> str:
        if not self.knowledge:
            return ""
        parts = [f"[Source: {r['document_name']}]\n{r['content']}" for r in self.knowledge]
        return "## Relevant Medical Guidelines\n\n" + "\n\n".join(parts)

    def patient_section(self) -> str:
        if self.patient is None:
            return ""
        return self.patient.to_prompt_section()


def format_conversation(lines: List[TranscriptLine]) -> str:
    return "\n".join(f"[{line.speaker}]: {line.text}" for line in lines)


class ContextAggregator:
    """
    Gathers everything a suggestion prompt needs.

    Knowledge search and patient fetch run concurrently and are both awaited.
    Losing either one only drops its section.
    """

    def __init__(
        self,
        search_knowledge: KnowledgeSearch,
        fetch_patient: PatientFetch,
        skills: Optional[List[ClinicalSkill]] = None,
        window: Optional[int] = None,
    ):
        self.search_knowledge = search_knowledge
        self.fetch_patient = fetch_patient
        self.skills: List[ClinicalSkill] = list(skills or [])
        self.window = window if window is not None else settings.CONTEXT_WINDOW_LINES

    def set_skills(self, skills: List[ClinicalSkill]) -> None:
        self.skills = list(skills)

    async def aggregate(self, session: Session) -> Optional[SuggestionContext]:
        lines = session.recent_lines(self.window)
        if not lines:
            logger.debug("[CONTEXT] No transcript lines for session %s", session.session_id)
            return None

        conversation_text = format_conversation(lines)

        knowledge_result, patient_result = await asyncio.gather(
            self.search_knowledge(conversation_text),
            self._fetch_patient(session.patient_id),
            return_exceptions=True,
        )

        knowledge: List[KnowledgeSearchResult] = []
        if isinstance(knowledge_result, BaseException):
            logger.warning(
                "[CONTEXT] Knowledge lookup failed for session %s, continuing without it: %r",
                session.session_id,
                knowledge_result,
            )
        else:
            knowledge = list(knowledge_result or [])

        patient: Optional[PatientContext] = None
        if isinstance(patient_result, BaseException):
            logger.warning(
                "[CONTEXT] Patient context failed for session %s, continuing without it: %r",
                session.session_id,
                patient_result,
            )
        else:
            patient = patient_result

        skill = find_matching_skill(self.skills, conversation_text)

        return SuggestionContext(
            session_id=session.session_id,
            conversation_text=conversation_text,
            knowledge=knowledge,
            patient=patient,
            skill=skill,
        )

    async def _fetch_patient(self, patient_id: Optional[str]) -> Optional[PatientContext]:
        if not patient_id:
            return None
        return await self.fetch_patient(patient_id)
