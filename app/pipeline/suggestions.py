import asyncio
import logging
import time
from typing import Callable, List, Optional

from app.core.session_models import Suggestion, new_id, utcnow
from app.llm.gemini import ChatCompletion, chat_complete
from app.models import TriggerSource
from app.pipeline.context import ContextAggregator
from app.pipeline.prompt import SYSTEM_PROMPT, build_prompt
from app.pipeline.schema import parse_suggestion_items
from app.storage.session_registry import SessionRegistry
from app.storage.session_store import store_suggestions

logger = logging.getLogger("pipeline")

ChatFn = Callable[[str, str], ChatCompletion]
PersistFn = Callable[[str, List[Suggestion]], None]


class SuggestionPipeline:
    """
    Aggregated context -> prompt -> LLM -> validated, persisted suggestions.

    `generate_suggestions` is the outer boundary: any failure inside is
    logged and reported as "no suggestions". A live session is never
    interrupted by a suggestion fault.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        aggregator: ContextAggregator,
        chat: ChatFn = chat_complete,
        persist: PersistFn = store_suggestions,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.registry = registry
        self.aggregator = aggregator
        self.chat = chat
        self.persist = persist
        self.system_prompt = system_prompt

    async def generate_suggestions(self, session_id: str, source: str) -> List[Suggestion]:
        if source not in TriggerSource.ALL:
            raise ValueError(f"unknown suggestion source: {source!r}")

        started = time.perf_counter()

        try:
            session = self.registry.find_session(session_id)
            if session is None:
                logger.warning("[PIPELINE] Session %s not found for suggestion generation", session_id)
                return []

            if not session.is_active:
                logger.debug("[PIPELINE] Session %s has ended, skipping", session_id)
                return []

            context = await self.aggregator.aggregate(session)
            if context is None:
                return []

            prompt = build_prompt(context)
            completion = await self._call_llm(prompt)
            if completion is None:
                return []

            items = parse_suggestion_items(completion.text)
            if not items:
                logger.debug("[PIPELINE] No suggestions generated for session %s", session_id)
                return []

            # The session may have ended while the model was answering
            if not session.is_active:
                logger.info(
                    "[PIPELINE] Session %s ended during generation, discarding %d suggestions",
                    session_id,
                    len(items),
                )
                return []

            triggered_at = utcnow()
            suggestions = [
                Suggestion(
                    suggestion_id=new_id(),
                    session_id=session_id,
                    content=item["content"],
                    type=item["type"],
                    urgency=item["urgency"],
                    confidence=item["confidence"],
                    source=source,
                    triggered_at=triggered_at,
                )
                for item in items
            ]

            # Disk first: a failed write must not leave suggestions only in memory
            self.persist(session_id, suggestions)
            self.registry.add_suggestions(session_id, suggestions)

            logger.info(
                "[PIPELINE] Generated %d suggestions for session %s (%s) in %.0fms. Skill: %s",
                len(suggestions),
                session_id,
                source,
                (time.perf_counter() - started) * 1000,
                context.skill.skill_id if context.skill else "none",
            )
            return suggestions

        except Exception:
            logger.exception("[PIPELINE] Failed to generate suggestions for session %s", session_id)
            return []

    async def _call_llm(self, prompt: str) -> Optional[ChatCompletion]:
        loop = asyncio.get_running_loop()
        started = time.perf_counter()

        try:
            completion = await loop.run_in_executor(None, self.chat, self.system_prompt, prompt)
        except Exception as e:
            logger.error(
                "[PIPELINE] LLM call failed after %.0fms: %s",
                (time.perf_counter() - started) * 1000,
                e,
            )
            return None

        if not completion.text:
            logger.warning("[PIPELINE] Empty response from LLM")
            return None

        logger.info(
            "[PIPELINE] LLM call completed: model %s, input tokens %s, output tokens %s, latency %.0fms",
            completion.model,
            completion.input_tokens,
            completion.output_tokens,
            completion.latency_ms,
        )
        return completion
