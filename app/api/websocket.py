import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core import runtime
from app.core.errors import SessionAlreadyEnded, SessionNotFound

logger = logging.getLogger("websocket")

STOP_MESSAGE = "stop"

# Close code for an unknown session (4000-4999 is application-defined)
CLOSE_SESSION_NOT_FOUND = 4404

ws_router = APIRouter()


def _parse_text_frame(raw: str) -> dict:
    if raw.strip().lower() == STOP_MESSAGE:
        return {"type": STOP_MESSAGE}

    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        return {}

    return message if isinstance(message, dict) else {}


@ws_router.websocket("/ws/sessions/{session_id}")
async def session_socket(ws: WebSocket, session_id: str):
    """
    Live channel for one session. Binary frames are audio chunks, text
    frames are manual transcript lines or "stop". Every client of the
    session receives every event.
    """
    await ws.accept()

    try:
        runtime.sessions.get_session(session_id)
    except SessionNotFound:
        await ws.close(code=CLOSE_SESSION_NOT_FOUND)
        return

    await runtime.connections.join(session_id, ws)

    try:
        while True:
            frame = await ws.receive()

            if frame["type"] == "websocket.disconnect":
                break

            # ---------------- AUDIO ----------------

            if frame.get("bytes") is not None:
                try:
                    await runtime.sessions.transcribe_and_add(session_id, frame["bytes"])
                except SessionAlreadyEnded:
                    await ws.send_json({"type": "error", "detail": "Session is already ended"})
                    break
                continue

            raw = frame.get("text")
            if raw is None:
                continue

            message = _parse_text_frame(raw)
            kind = message.get("type")

            # ---------------- TRANSCRIPT ----------------

            if kind == "transcript":
                try:
                    await runtime.sessions.add_transcript_line(
                        session_id,
                        str(message.get("text") or ""),
                    )
                except SessionAlreadyEnded:
                    await ws.send_json({"type": "error", "detail": "Session is already ended"})
                    break
                continue

            # ---------------- STOP ----------------

            if kind == STOP_MESSAGE:
                try:
                    await runtime.sessions.end_session(session_id)
                except SessionAlreadyEnded:
                    # Ended from another client or over HTTP
                    pass
                break

            await ws.send_json({"type": "error", "detail": "Unsupported message"})

    except WebSocketDisconnect:
        logger.debug("[WS] Client disconnected from session %s", session_id)

    finally:
        await runtime.connections.leave(session_id, ws)
