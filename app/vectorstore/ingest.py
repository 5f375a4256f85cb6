import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional

from app.config import settings
from app.core.session_models import KnowledgeChunk, new_id
from app.vectorstore.chroma_store import KnowledgeIndex

logger = logging.getLogger("knowledge")

# Approximation: one word is about 1.3 tokens
TOKENS_PER_WORD = 1.3

CATEGORY_PREFIXES = ("CDC", "AHA", "WHO", "NICE", "FDA")

PLACEHOLDER_KEYS = {"", "replace_in_override", "placeholder-for-dev", "changeme"}

GUIDELINE_SUFFIXES = (".txt", ".md")


def chunk_text(content: str, chunk_size: int = 500, chunk_overlap: int = 100) -> List[str]:
    """
    Split text into overlapping word windows.
    Sizes are in tokens and converted to words.
    """
    words_per_chunk = int(chunk_size / TOKENS_PER_WORD)
    words_overlap = int(chunk_overlap / TOKENS_PER_WORD)

    if words_per_chunk <= 0:
        raise ValueError("chunk_size too small")
    if words_overlap < 0 or words_overlap >= words_per_chunk:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    words = content.split()
    chunks: List[str] = []

    start = 0
    while start < len(words):
        end = min(start + words_per_chunk, len(words))
        chunks.append(" ".join(words[start:end]))

        if end >= len(words):
            break
        start += words_per_chunk - words_overlap

    return chunks


def extract_category(file_name: str) -> Optional[str]:
    upper = file_name.upper()
    for prefix in CATEGORY_PREFIXES:
        if upper.startswith(f"{prefix}-"):
            return prefix.lower()
    return None


def has_usable_api_key(api_key: Optional[str]) -> bool:
    if api_key is None:
        return False
    lowered = api_key.strip().lower()
    return lowered not in PLACEHOLDER_KEYS and "placeholder" not in lowered


async def ingest_document(
    index: KnowledgeIndex,
    path: Path,
    embed: Callable[[str], List[float]],
    chunk_size: int,
    chunk_overlap: int,
) -> int:
    file_name = path.name

    if await index.has_document(file_name):
        logger.debug("[INGEST] %s already indexed, skipping", file_name)
        return 0

    content = path.read_text(encoding="utf-8")
    pieces = chunk_text(content, chunk_size, chunk_overlap)
    if not pieces:
        return 0

    category = extract_category(file_name)
    document_id = new_id()
    loop = asyncio.get_running_loop()

    chunks: List[KnowledgeChunk] = []
    for chunk_index, piece in enumerate(pieces):
        vector = await loop.run_in_executor(None, embed, piece)
        chunks.append(
            KnowledgeChunk(
                chunk_id=new_id(),
                document_id=document_id,
                document_name=file_name,
                content=piece,
                embedding=vector,
                category=category,
                chunk_index=chunk_index,
            )
        )

    await index.add_chunks(chunks)

    logger.info(
        "[INGEST] Seeded %s: %d chunks, category %s",
        file_name,
        len(chunks),
        category or "none",
    )
    return len(chunks)


async def seed_knowledge_base(
    index: KnowledgeIndex,
    directory: Optional[Path] = None,
    embed: Optional[Callable[[str], List[float]]] = None,
    api_key: Optional[str] = None,
) -> int:
    """
    Index every guideline file not already present. Returns chunks added.
    Skipped entirely without a real API key: embeddings need one.
    """
    if embed is None:
        if not has_usable_api_key(api_key if api_key is not None else settings.GEMINI_API_KEY):
            logger.warning("[INGEST] Gemini API key missing or placeholder, skipping knowledge seeding")
            return 0
        embed = index.embed

    directory = directory or settings.GUIDELINES_DIR
    if not directory.is_dir():
        logger.warning("[INGEST] Guidelines directory not found at %s", directory)
        return 0

    files = sorted(p for p in directory.iterdir() if p.suffix.lower() in GUIDELINE_SUFFIXES)

    added = 0
    for path in files:
        try:
            added += await ingest_document(
                index,
                path,
                embed,
                settings.KNOWLEDGE_CHUNK_SIZE,
                settings.KNOWLEDGE_CHUNK_OVERLAP,
            )
        except Exception:
            logger.exception("[INGEST] Failed to process %s", path)

    return added
