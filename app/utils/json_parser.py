import json
import re
from typing import Any, Dict, List, Union

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from text, handling common LLM formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```), anywhere in the text
    - Leading/trailing prose around a single JSON object or array
    - Trailing data after the first complete JSON value

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON object or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = text.strip()
    fenced = _FENCE.search(cleaned_text)
    if fenced:
        cleaned_text = fenced.group(1).strip()

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    # Decode the first complete value starting at the first brace or bracket
    decoder = json.JSONDecoder()
    for opener in ("{", "["):
        start = cleaned_text.find(opener)
        while start != -1:
            try:
                value, _ = decoder.raw_decode(cleaned_text, start)
                LOGGER.info(f"Recovered JSON value starting at position {start}")
                return value
            except json.JSONDecodeError:
                start = cleaned_text.find(opener, start + 1)

    LOGGER.error("Failed to parse JSON from model response")
    return None
