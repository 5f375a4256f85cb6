import asyncio
import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger("broadcast")


class ConnectionManager:
    """
    Websocket groups keyed by session id. Every event for a session goes
    to every socket that joined it.
    """

    def __init__(self):
        self._groups: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def join(self, session_id: str, ws: WebSocket) -> None:
        async with self._lock:
            self._groups.setdefault(session_id, set()).add(ws)
        logger.debug("[BROADCAST] Client joined session %s", session_id)

    async def leave(self, session_id: str, ws: WebSocket) -> None:
        async with self._lock:
            group = self._groups.get(session_id)
            if group is None:
                return
            group.discard(ws)
            if not group:
                del self._groups[session_id]
        logger.debug("[BROADCAST] Client left session %s", session_id)

    async def broadcast(self, session_id: str, event: Dict[str, Any]) -> None:
        async with self._lock:
            targets = list(self._groups.get(session_id, ()))

        dead = []
        for ws in targets:
            try:
                await ws.send_json(event)
            except Exception as e:
                logger.warning(
                    "[BROADCAST] Dropping client of session %s after send failure: %s",
                    session_id,
                    e,
                )
                dead.append(ws)

        for ws in dead:
            await self.leave(session_id, ws)
