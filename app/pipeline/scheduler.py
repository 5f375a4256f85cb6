import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from app.config import settings
from app.core.session_models import Suggestion, TranscriptLine
from app.models import BroadcastEvent, SpeakerRole, TriggerReason, TriggerSource

logger = logging.getLogger("scheduler")

GenerateFn = Callable[[str, str], Awaitable[List[Suggestion]]]
BroadcastFn = Callable[[str, Dict[str, Any]], Awaitable[None]]


async def _no_broadcast(session_id: str, event: Dict[str, Any]) -> None:
    return None


@dataclass
class SessionTriggerState:
    session_id: str
    patient_utterances: int = 0
    timer: Optional[asyncio.TimerHandle] = None
    # Identifies the live timer; a callback carrying an older value is stale
    generation: int = 0
    tasks: Set[asyncio.Task] = field(default_factory=set)


class SessionBatchScheduler:
    """
    Decides when to generate suggestions for a session: after N patient
    utterances, or when the debounce window runs out with utterances pending.

    All state changes happen on the event loop without awaiting in between,
    so the increment, the threshold check and the reset of the counter and
    timer are one step. Timer expiry is delivered through `loop.call_later`,
    i.e. posted back onto the same loop rather than running on another thread.
    """

    def __init__(
        self,
        generate: GenerateFn,
        broadcast: Optional[BroadcastFn] = None,
        threshold: Optional[int] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.generate = generate
        self.broadcast = broadcast or _no_broadcast
        self.threshold = threshold if threshold is not None else settings.BATCH_PATIENT_UTTERANCE_THRESHOLD
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.BATCH_INTERVAL_SECONDS
        )

        if self.threshold < 1:
            raise ValueError("threshold must be at least 1")
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._states: Dict[str, SessionTriggerState] = {}

    # --------------------
    # PUBLIC API
    # --------------------

    def on_transcript_line(self, session_id: str, line: TranscriptLine) -> bool:
        """
        Record a transcript line. Returns True when it fired a trigger.
        Must be called from the event loop thread.
        """
        state = self._states.get(session_id)
        if state is None:
            state = self._create_state(session_id)

        if line.speaker != SpeakerRole.PATIENT:
            return False

        state.patient_utterances += 1

        if state.patient_utterances < self.threshold:
            return False

        self._fire(state, TriggerReason.PATIENT_UTTERANCE_THRESHOLD)
        state.patient_utterances = 0
        self._arm_timer(state)
        return True

    def cleanup_session(self, session_id: str) -> bool:
        """
        Cancel the timer and any in-flight generation, drop the counter.
        Calling it again for the same session is a no-op.
        """
        state = self._states.pop(session_id, None)
        if state is None:
            return False

        if state.timer is not None:
            state.timer.cancel()
            state.timer = None
        state.generation += 1

        for task in list(state.tasks):
            task.cancel()

        logger.debug("[SCHEDULER] Cleaned up trigger state for session %s", session_id)
        return True

    def shutdown(self) -> None:
        for session_id in list(self._states):
            self.cleanup_session(session_id)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._states

    def utterance_count(self, session_id: str) -> int:
        state = self._states.get(session_id)
        return state.patient_utterances if state else 0

    def pending_tasks(self, session_id: str) -> Set[asyncio.Task]:
        state = self._states.get(session_id)
        return set(state.tasks) if state else set()

    # --------------------
    # INTERNALS
    # --------------------

    def _create_state(self, session_id: str) -> SessionTriggerState:
        state = SessionTriggerState(session_id=session_id)
        self._states[session_id] = state
        self._arm_timer(state)
        logger.debug("[SCHEDULER] Created trigger state for session %s", session_id)
        return state

    def _arm_timer(self, state: SessionTriggerState) -> None:
        # Cancel-and-rearm: the window always runs from the last reset
        if state.timer is not None:
            state.timer.cancel()

        state.generation += 1
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(
            self.interval_seconds,
            self._on_timer_elapsed,
            state.session_id,
            state.generation,
        )

    def _on_timer_elapsed(self, session_id: Any, generation: int) -> None:
        try:
            if not isinstance(session_id, str) or not session_id.strip():
                logger.warning("[SCHEDULER] Timer fired with malformed session id %r, dropping", session_id)
                return

            state = self._states.get(session_id)
            if state is None:
                logger.debug("[SCHEDULER] Timer fired for unknown session %s, dropping", session_id)
                return

            if generation != state.generation:
                return

            state.timer = None

            if state.patient_utterances > 0:
                self._fire(state, TriggerReason.TIME_THRESHOLD)
                state.patient_utterances = 0

            # Keep exactly one live timer per session, even after an idle window
            self._arm_timer(state)

        except Exception:
            logger.exception("[SCHEDULER] Timer callback failed for session %s", session_id)

    def _fire(self, state: SessionTriggerState, reason: str) -> None:
        logger.info("[SCHEDULER] Auto-batch trigger for session %s: %s", state.session_id, reason)

        task = asyncio.get_running_loop().create_task(
            self._run_trigger(state.session_id, reason)
        )
        state.tasks.add(task)
        task.add_done_callback(state.tasks.discard)

    async def _run_trigger(self, session_id: str, reason: str) -> None:
        try:
            suggestions = await self.generate(session_id, TriggerSource.BATCH)

            for suggestion in suggestions:
                await self.broadcast(
                    session_id,
                    {
                        "type": BroadcastEvent.SUGGESTION_ADDED,
                        "suggestion": suggestion.to_dict(),
                    },
                )

            logger.info(
                "[SCHEDULER] %d batch suggestions for session %s (%s)",
                len(suggestions),
                session_id,
                reason,
            )

        except asyncio.CancelledError:
            logger.debug("[SCHEDULER] Generation for session %s cancelled", session_id)
            raise

        except Exception:
            logger.exception("[SCHEDULER] Batch generation failed for session %s", session_id)
