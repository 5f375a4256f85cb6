import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import chromadb
from chromadb.config import Settings as ChromaSettings

from app.config import settings
from app.core.session_models import KnowledgeChunk
from app.llm.gemini import embed_text
from app.models import KnowledgeSearchResult

logger = logging.getLogger("knowledge")

CHROMA_DIR = settings.DATA_DIR / "chroma"

# Candidates fetched per requested result before the score floor is applied
CANDIDATE_FACTOR = 2


@dataclass(frozen=True)
class SearchProfile:
    top_k: int
    min_score: float


USER_SEARCH = SearchProfile(top_k=3, min_score=0.7)
CONTEXT_SEARCH = SearchProfile(top_k=5, min_score=0.5)


def open_collection(path: Optional[str] = None, name: Optional[str] = None):
    persist_dir = path or str(CHROMA_DIR)
    client = chromadb.PersistentClient(
        path=persist_dir,
        settings=ChromaSettings(anonymized_telemetry=False),
    )
    logger.info("[CHROMA] Persist dir: %s", persist_dir)

    # Embeddings come from Gemini, so no collection-side embedding function
    return client.get_or_create_collection(
        name=name or settings.CHROMA_COLLECTION,
        metadata={"hnsw:space": "cosine"},
        embedding_function=None,
    )


class KnowledgeIndex:
    """
    Reference-document chunks in a cosine-space Chroma collection.

    Failures are logged and re-raised; degrading gracefully is the
    aggregator's job, not this one.
    """

    def __init__(
        self,
        collection: Any = None,
        embed: Callable[[str], List[float]] = embed_text,
    ):
        self._collection = collection
        self.embed = embed

    @property
    def collection(self):
        if self._collection is None:
            self._collection = open_collection()
        return self._collection

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    async def search(
        self,
        query: str,
        top_k: int = USER_SEARCH.top_k,
        min_score: float = USER_SEARCH.min_score,
    ) -> List[KnowledgeSearchResult]:
        if not query or not query.strip():
            raise ValueError("query must not be blank")
        if top_k <= 0:
            raise ValueError("top_k must be positive")

        started = time.perf_counter()

        try:
            query_vector = await self._run(self.embed, query)
            raw = await self._run(
                self.collection.query,
                query_embeddings=[query_vector],
                n_results=top_k * CANDIDATE_FACTOR,
                include=["documents", "metadatas", "distances"],
            )
        except Exception:
            logger.exception("[KNOWLEDGE] Search failed (query length %d)", len(query))
            raise

        results = rank_results(raw, top_k=top_k, min_score=min_score)

        logger.info(
            "[KNOWLEDGE] Search done: query length %d, results %d, %.0fms",
            len(query),
            len(results),
            (time.perf_counter() - started) * 1000,
        )
        return results

    async def search_for_context(self, query: str) -> List[KnowledgeSearchResult]:
        """Lower floor, more results: background for suggestion prompts."""
        return await self.search(
            query,
            top_k=CONTEXT_SEARCH.top_k,
            min_score=CONTEXT_SEARCH.min_score,
        )

    async def add_chunks(self, chunks: List[KnowledgeChunk]) -> None:
        if not chunks:
            return

        await self._run(
            self.collection.add,
            ids=[c.chunk_id for c in chunks],
            embeddings=[c.embedding for c in chunks],
            documents=[c.content for c in chunks],
            metadatas=[_chunk_metadata(c) for c in chunks],
        )

    async def has_document(self, document_name: str) -> bool:
        found = await self._run(
            self.collection.get,
            where={"document_name": document_name},
            limit=1,
        )
        return bool(found and found.get("ids"))

    async def count(self) -> int:
        return await self._run(self.collection.count)


def _chunk_metadata(chunk: KnowledgeChunk) -> dict:
    # Chroma rejects None metadata values
    metadata = {
        "document_id": chunk.document_id,
        "document_name": chunk.document_name,
        "chunk_index": chunk.chunk_index,
    }
    if chunk.category:
        metadata["category"] = chunk.category
    return metadata


def rank_results(raw: dict, top_k: int, min_score: float) -> List[KnowledgeSearchResult]:
    """
    Chroma returns candidates nearest first. Convert cosine distance to
    similarity, apply the floor, then truncate.
    """
    ids = (raw.get("ids") or [[]])[0]
    documents = (raw.get("documents") or [[]])[0] or []
    metadatas = (raw.get("metadatas") or [[]])[0] or []
    distances = (raw.get("distances") or [[]])[0] or []

    candidates: List[KnowledgeSearchResult] = []

    for i, chunk_id in enumerate(ids):
        if i >= len(distances):
            break

        meta = metadatas[i] if i < len(metadatas) and metadatas[i] else {}
        score = 1.0 - float(distances[i])

        candidates.append({
            "chunk_id": chunk_id,
            "document_name": str(meta.get("document_name", "")),
            "content": documents[i] if i < len(documents) else "",
            "category": meta.get("category"),
            "score": score,
        })

    candidates.sort(key=lambda r: r["score"], reverse=True)

    return [r for r in candidates if r["score"] >= min_score][:top_k]
