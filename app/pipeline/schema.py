import json
import logging
import math
from typing import Any, Dict, List, Optional

from app.models import SuggestionItem

logger = logging.getLogger("pipeline")

DEFAULT_TYPE = "clinical"
DEFAULT_URGENCY = "medium"
DEFAULT_CONFIDENCE = 0.5


def extract_json_block(raw_text: str) -> Optional[str]:
    """
    The model may wrap its JSON in prose or markdown fences.
    Take everything from the first '{' to the last '}'.
    """
    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return raw_text[start:end + 1]


def _get(mapping: Dict[str, Any], key: str) -> Any:
    # Field names are matched case-insensitively
    if key in mapping:
        return mapping[key]
    for k, v in mapping.items():
        if isinstance(k, str) and k.lower() == key:
            return v
    return None


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    value = float(value)
    if math.isnan(value) or value < 0.0 or value > 1.0:
        return DEFAULT_CONFIDENCE
    return value


def sanitize_item(item: Any) -> Optional[SuggestionItem]:
    """
    Default blank fields, reset out-of-range confidence.
    Returns None when there is no content to show.
    """
    if not isinstance(item, dict):
        return None

    content = _text(_get(item, "content"))
    if not content:
        return None

    return {
        "content": content,
        "type": _text(_get(item, "type")) or DEFAULT_TYPE,
        "urgency": _text(_get(item, "urgency")) or DEFAULT_URGENCY,
        "confidence": _confidence(_get(item, "confidence")),
    }


def parse_suggestion_items(raw_text: Optional[str]) -> List[SuggestionItem]:
    """
    Best-effort extraction then strict validation.
    Never raises: anything malformed means no suggestions.
    """
    if not raw_text:
        return []

    block = extract_json_block(raw_text)
    if block is None:
        logger.warning("[PIPELINE] No JSON object found in LLM response")
        return []

    try:
        parsed = json.loads(block)
    except json.JSONDecodeError as e:
        logger.warning("[PIPELINE] LLM response is not valid JSON: %s", e)
        return []

    if not isinstance(parsed, dict):
        return []

    items = _get(parsed, "suggestions")
    if not isinstance(items, list) or not items:
        logger.debug("[PIPELINE] Parsed JSON has no suggestions")
        return []

    out: List[SuggestionItem] = []
    for item in items:
        clean = sanitize_item(item)
        if clean is not None:
            out.append(clean)

    return out
