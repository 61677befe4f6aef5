import json
from typing import Any, Dict, Optional

from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


def find_first_json_object(text: str) -> Optional[str]:
    """Locate the first top-level ``{...}`` block inside free text.

    Scans from the first ``{`` and counts brace depth until it returns to
    zero. Braces inside JSON string literals (including escaped quotes) do
    not affect the depth.

    Args:
        text: Raw LLM response, possibly wrapped in prose or code fences

    Returns:
        The balanced substring, or None if no complete object exists
    """
    if not text:
        return None

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    return None


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse the first JSON object out of an LLM response.

    The candidate block found by :func:`find_first_json_object` is parsed
    strictly; anything that is not a JSON object counts as a failure.

    Args:
        text: Raw LLM response

    Returns:
        Parsed dict or None if nothing parseable was found
    """
    candidate = find_first_json_object(text)
    if candidate is None:
        LOGGER.warning(
            "No JSON object found in LLM response",
            extra={"response_preview": (text or "")[:200]},
        )
        return None

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Failed to parse JSON object from LLM response: {e}")
        return None

    if not isinstance(parsed, dict):
        return None
    return parsed
