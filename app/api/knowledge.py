from dataclasses import dataclass

from fastapi import APIRouter, HTTPException

from app.core import runtime
from app.vectorstore.chroma_store import USER_SEARCH

router = APIRouter(prefix="/knowledge", tags=["knowledge"])

MAX_TOP_K = 10


@dataclass
class KnowledgeSearchRequest:
    query: str
    top_k: int = USER_SEARCH.top_k
    min_score: float = USER_SEARCH.min_score


@router.post("/search")
async def search_knowledge(body: KnowledgeSearchRequest):
    if not body.query or not body.query.strip():
        raise HTTPException(status_code=400, detail="Query is required")

    if body.top_k < 1 or body.top_k > MAX_TOP_K:
        raise HTTPException(status_code=400, detail=f"top_k must be between 1 and {MAX_TOP_K}")

    if body.min_score <= 0 or body.min_score > 1:
        raise HTTPException(status_code=400, detail="min_score must be in (0, 1]")

    try:
        results = await runtime.knowledge_index.search(
            body.query,
            top_k=body.top_k,
            min_score=body.min_score,
        )
    except Exception as e:
        raise HTTPException(status_code=502, detail="Knowledge search failed") from e

    return {"query": body.query, "results": results}
