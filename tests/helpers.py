from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.core.session_models import TranscriptLine, new_id
from app.llm.gemini import ChatCompletion

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def make_line(speaker: str, text: str = "something", seconds: float = 0.0) -> TranscriptLine:
    return TranscriptLine(line_id=new_id(), speaker=speaker, text=text, timestamp=at(seconds))


class FakeCollection:
    """Chroma collection stand-in with canned query results."""

    def __init__(self, hits: Optional[List[tuple]] = None, error: Optional[Exception] = None):
        # hits: (chunk_id, document_name, content, category, distance), nearest first
        self.hits = hits or []
        self.error = error
        self.queries: List[dict] = []
        self.added: List[dict] = []

    def query(self, query_embeddings, n_results, include):
        self.queries.append({"embeddings": query_embeddings, "n_results": n_results})
        if self.error is not None:
            raise self.error

        hits = self.hits[:n_results]
        return {
            "ids": [[h[0] for h in hits]],
            "documents": [[h[2] for h in hits]],
            "metadatas": [[{"document_name": h[1], **({"category": h[3]} if h[3] else {})} for h in hits]],
            "distances": [[h[4] for h in hits]],
        }

    def add(self, ids, embeddings, documents, metadatas):
        for i, chunk_id in enumerate(ids):
            self.added.append({
                "id": chunk_id,
                "embedding": embeddings[i],
                "document": documents[i],
                "metadata": metadatas[i],
            })

    def get(self, where, limit):
        name = where["document_name"]
        ids = [a["id"] for a in self.added if a["metadata"]["document_name"] == name]
        return {"ids": ids[:limit]}

    def count(self):
        return len(self.added)


def fake_embed(text: str) -> List[float]:
    return [float(len(text)), 1.0, 0.0]


class FakeChat:
    """Blocking chat_complete replacement that records its calls."""

    def __init__(self, text: str = '{"suggestions": []}', error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[tuple] = []

    def __call__(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return ChatCompletion(text=self.text, model="fake", latency_ms=1.0, input_tokens=10, output_tokens=5)


class Recorder:
    """Async broadcast target."""

    def __init__(self):
        self.events: List[tuple] = []

    async def __call__(self, session_id: str, event: dict) -> None:
        self.events.append((session_id, event))

    def of_type(self, event_type: str) -> List[dict]:
        return [e for _, e in self.events if e["type"] == event_type]


