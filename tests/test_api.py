import json

import httpx
import pytest
from fastapi import status
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api.broadcast import ConnectionManager
from app.core import runtime
from app.core.session_service import SessionService
from app.models import BroadcastEvent
from app.pipeline.context import ContextAggregator
from app.pipeline.scheduler import SessionBatchScheduler
from app.pipeline.suggestions import SuggestionPipeline
from app.storage.session_registry import SessionRegistry
from app.vectorstore.chroma_store import KnowledgeIndex
from main import app

from helpers import FakeChat, FakeCollection, fake_embed

ONE_SUGGESTION = '{"suggestions": [{"content": "Ask about family history", "type": "follow_up", "urgency": "low", "confidence": 0.6}]}'

HITS = [
    ("c1", "AHA-chest-pain.md", "Obtain an ECG within 10 minutes", "aha", 0.1),
    ("c2", "notes.md", "Unrelated", None, 0.6),
]


async def no_knowledge(query):
    return []


async def no_patient(patient_id):
    return None


@pytest.fixture
def wired(monkeypatch):
    connections = ConnectionManager()
    registry = SessionRegistry()
    pipeline = SuggestionPipeline(
        registry,
        ContextAggregator(no_knowledge, no_patient),
        chat=FakeChat(ONE_SUGGESTION),
    )
    scheduler = SessionBatchScheduler(
        pipeline.generate_suggestions,
        broadcast=connections.broadcast,
        threshold=5,
        interval_seconds=60,
    )
    service = SessionService(
        registry,
        scheduler,
        pipeline,
        transcribe=lambda audio: "hello from audio",
        broadcast=connections.broadcast,
    )

    monkeypatch.setattr(runtime, "connections", connections)
    monkeypatch.setattr(runtime, "sessions", service)
    monkeypatch.setattr(runtime, "knowledge_index", KnowledgeIndex(collection=FakeCollection(HITS), embed=fake_embed))
    return service


def api_client():
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


async def test_session_lifecycle(wired):
    async with api_client() as ac:
        create = await ac.post("/sessions", json={"doctor_id": "D1", "patient_id": "P1"})
        assert create.status_code == status.HTTP_201_CREATED
        session_id = create.json()["id"]
        assert create.json()["status"] == "active"

        line = await ac.post(f"/sessions/{session_id}/transcript", json={"text": "What brings you in?"})
        assert line.status_code == status.HTTP_200_OK
        assert line.json()["speaker"] == "Doctor"

        blank = await ac.post(f"/sessions/{session_id}/transcript", json={"text": "   "})
        assert blank.status_code == status.HTTP_204_NO_CONTENT

        manual = await ac.post(
            f"/sessions/{session_id}/transcript",
            json={"text": "My knee hurts", "speaker": "patient"},
        )
        assert manual.json()["speaker"] == "Patient"

        suggest = await ac.post(f"/sessions/{session_id}/suggest")
        assert suggest.status_code == status.HTTP_200_OK
        body = suggest.json()
        assert body["session_id"] == session_id
        assert body["suggestions"][0]["source"] == "on_demand"

        listed = await ac.get(f"/sessions/{session_id}/suggestions")
        assert [s["content"] for s in listed.json()] == ["Ask about family history"]

        fetched = await ac.get(f"/sessions/{session_id}")
        assert len(fetched.json()["transcript"]) == 2
        assert len(fetched.json()["suggestions"]) == 1

        end = await ac.post(f"/sessions/{session_id}/end")
        assert end.status_code == status.HTTP_200_OK
        assert end.json()["status"] == "completed"

        again = await ac.post(f"/sessions/{session_id}/end")
        assert again.status_code == status.HTTP_400_BAD_REQUEST

        late = await ac.post(f"/sessions/{session_id}/transcript", json={"text": "one more thing"})
        assert late.status_code == status.HTTP_400_BAD_REQUEST


async def test_unknown_session_is_404(wired):
    async with api_client() as ac:
        assert (await ac.get("/sessions/missing")).status_code == status.HTTP_404_NOT_FOUND
        assert (await ac.post("/sessions/missing/end")).status_code == status.HTTP_404_NOT_FOUND
        assert (await ac.post("/sessions/missing/suggest")).status_code == status.HTTP_404_NOT_FOUND
        missing_line = await ac.post("/sessions/missing/transcript", json={"text": "hello"})
        assert missing_line.status_code == status.HTTP_404_NOT_FOUND


async def test_invalid_requests_are_400(wired):
    async with api_client() as ac:
        no_doctor = await ac.post("/sessions", json={"doctor_id": " "})
        assert no_doctor.status_code == status.HTTP_400_BAD_REQUEST

        session_id = (await ac.post("/sessions", json={"doctor_id": "D1"})).json()["id"]
        bad_speaker = await ac.post(
            f"/sessions/{session_id}/transcript",
            json={"text": "hi", "speaker": "nurse"},
        )
        assert bad_speaker.status_code == status.HTTP_400_BAD_REQUEST


async def test_knowledge_search(wired):
    async with api_client() as ac:
        response = await ac.post("/knowledge/search", json={"query": "chest pain"})

    assert response.status_code == status.HTTP_200_OK
    results = response.json()["results"]
    assert [r["chunk_id"] for r in results] == ["c1"]
    assert results[0]["score"] == pytest.approx(0.9)


async def test_knowledge_search_failure_is_502(wired, monkeypatch):
    failing = KnowledgeIndex(collection=FakeCollection(error=RuntimeError("db down")), embed=fake_embed)
    monkeypatch.setattr(runtime, "knowledge_index", failing)

    async with api_client() as ac:
        response = await ac.post("/knowledge/search", json={"query": "chest pain"})

    assert response.status_code == status.HTTP_502_BAD_GATEWAY


@pytest.mark.parametrize(
    "payload",
    [
        {"query": "  "},
        {"query": "chest pain", "top_k": 0},
        {"query": "chest pain", "top_k": 11},
        {"query": "chest pain", "min_score": 0},
        {"query": "chest pain", "min_score": 1.5},
    ],
)
async def test_knowledge_search_validation(wired, payload):
    async with api_client() as ac:
        response = await ac.post("/knowledge/search", json=payload)

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_websocket_transcript_audio_and_stop(wired):
    with TestClient(app) as client:
        session_id = client.post("/sessions", json={"doctor_id": "D1"}).json()["id"]

        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.send_text(json.dumps({"type": "transcript", "text": "What brings you in?"}))
            typed = ws.receive_json()
            assert typed["type"] == BroadcastEvent.TRANSCRIPT_LINE_ADDED
            assert typed["line"]["text"] == "What brings you in?"

            ws.send_bytes(b"\x00\x01" * 400)
            spoken = ws.receive_json()
            assert spoken["type"] == BroadcastEvent.TRANSCRIPT_LINE_ADDED
            assert spoken["line"]["text"] == "hello from audio"

            ws.send_text("stop")
            assert ws.receive_json()["type"] == BroadcastEvent.SESSION_ENDED

        assert client.get(f"/sessions/{session_id}").json()["status"] == "completed"


def test_websocket_audio_after_end_reports_error(wired):
    transcribed = []
    wired.transcribe = lambda audio: transcribed.append(audio) or "too late"

    with TestClient(app) as client:
        session_id = client.post("/sessions", json={"doctor_id": "D1"}).json()["id"]

        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.send_text(json.dumps({"type": "transcript", "text": "Any allergies?"}))
            assert ws.receive_json()["type"] == BroadcastEvent.TRANSCRIPT_LINE_ADDED

            assert client.post(f"/sessions/{session_id}/end").status_code == status.HTTP_200_OK
            assert ws.receive_json()["type"] == BroadcastEvent.SESSION_ENDED

            ws.send_bytes(b"\x00\x01" * 400)
            event = ws.receive_json()
            assert event == {"type": "error", "detail": "Session is already ended"}

    assert transcribed == []
    assert [line.text for line in wired.get_session(session_id).transcript] == ["Any allergies?"]


def test_websocket_unknown_session_is_closed(wired):
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/sessions/missing") as ws:
                ws.receive_json()

    assert exc.value.code == 4404
