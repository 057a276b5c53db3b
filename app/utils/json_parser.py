import json
from typing import Any, Dict, Optional

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_DECODER = json.JSONDecoder()


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code block (```json ... ```)."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_first_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse the first JSON object embedded in a model response.

    Handles:
    - Markdown code blocks
    - Prose before or after the object
    - Trailing concatenated objects (only the first is returned)

    Only the first ``{`` is considered: if the object that starts there is
    malformed, the result is ``None`` rather than a later, possibly
    unrelated, object.

    Args:
        text: Raw model output

    Returns:
        The parsed dict or None if there is no well-formed first object
    """
    if not text:
        return None

    cleaned = strip_code_fences(text)
    start = cleaned.find("{")
    if start == -1:
        LOGGER.debug("No JSON object in model output", extra={"preview": cleaned[:100]})
        return None

    try:
        parsed, _ = _DECODER.raw_decode(cleaned, start)
    except json.JSONDecodeError as e:
        LOGGER.warning(
            f"Malformed JSON object in model output: {e}",
            extra={"preview": cleaned[start:start + 100]}
        )
        return None

    if not isinstance(parsed, dict):
        return None
    return parsed
