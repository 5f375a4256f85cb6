import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from google import genai

from app.config import settings

logger = logging.getLogger("gemini")

_client: Optional[genai.Client] = None


def get_client() -> genai.Client:
    # Created on first use so importing the app does not require an API key
    global _client
    if _client is None:
        _client = genai.Client(api_key=settings.GEMINI_API_KEY)
    return _client


@dataclass
class ChatCompletion:
    text: str
    model: str
    latency_ms: float
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


def chat_complete(system_prompt: str, user_prompt: str) -> ChatCompletion:
    """
    Single-turn completion. Blocking: call through run_in_executor.
    Raises whatever the client raises; callers decide how to degrade.
    """
    started = time.perf_counter()

    response = get_client().models.generate_content(
        model=settings.GEMINI_MODEL,
        contents=user_prompt,
        config={
            "system_instruction": system_prompt,
            "temperature": settings.GEMINI_TEMPERATURE,
        },
    )

    latency_ms = (time.perf_counter() - started) * 1000
    usage = getattr(response, "usage_metadata", None)

    return ChatCompletion(
        text=(response.text or "").strip(),
        model=settings.GEMINI_MODEL,
        latency_ms=latency_ms,
        input_tokens=getattr(usage, "prompt_token_count", None),
        output_tokens=getattr(usage, "candidates_token_count", None),
    )


def embed_text(text: str) -> List[float]:
    """
    Embedding for both ingestion and query time.
    The same model must be used on both sides.
    """
    response = get_client().models.embed_content(
        model=settings.GEMINI_EMBEDDING_MODEL,
        contents=text,
    )

    if not response.embeddings or not response.embeddings[0].values:
        raise ValueError("empty_embedding_response")

    return list(response.embeddings[0].values)
