from typing import Any, Dict, Optional
import json
import logging
import re

from app.core.exceptions import ScoringValidationError

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r'^\s*```[\w-]*\s*\n?(.*?)\n?\s*```\s*$', re.DOTALL)
_decoder = json.JSONDecoder()


def strip_code_fences(raw_text: str) -> str:
    """Remove a markdown code fence wrapping the whole text, if present."""
    if not raw_text:
        return ""
    match = _FENCE_PATTERN.match(raw_text)
    if match:
        return match.group(1).strip()
    return raw_text.strip()


def extract_first_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Return the first balanced JSON object embedded in ``text``.

    Each ``{`` is tried as the start of an object; ``raw_decode`` stops at the
    matching close brace, so trailing prose or a second object is ignored.
    """
    start = text.find('{')
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except (ValueError, RecursionError):
            # JSONDecodeError, or an integer literal past the int digit limit
            start = text.find('{', start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find('{', start + 1)
    return None


def parse_json_object(raw_text: str) -> Dict[str, Any]:
    """
    Parse LLM output that is expected to contain one JSON object.

    Tries a raw parse of the fence-stripped text first, then falls back to the
    first balanced object found anywhere in the text.

    Raises:
        ScoringValidationError: If no JSON object can be recovered.
    """
    text = strip_code_fences(raw_text)
    if not text:
        raise ScoringValidationError("Empty response text")

    try:
        decoded = json.loads(text)
    except (ValueError, RecursionError):
        decoded = extract_first_json_object(text)
        if decoded is None:
            raise ScoringValidationError(
                "No JSON object found in response",
                details={"raw_preview": raw_text[:500]},
            )
        logger.info("Recovered JSON object from surrounding text")

    if not isinstance(decoded, dict):
        raise ScoringValidationError(
            f"Top-level JSON value is {type(decoded).__name__}, expected object",
            details={"raw_preview": raw_text[:500]},
        )
    return decoded
