"""Sanitization of user-authored text before it is embedded in LLM prompts.

Every piece of narrative text, interview answer or re-sent conversation turn
goes through :func:`sanitize_for_prompt` before it is concatenated into an
instruction for the remote generation service.

The pattern catalogue is a first line of defense only. It neutralizes the
common instruction-override phrasings and chat-role delimiters; it does not
claim to stop an adaptive attacker.
"""

import re
from typing import Any, Dict, List

DEFAULT_MAX_LENGTH = 5000
TRUNCATION_MARKER = "... [truncated]"
FILTERED_PLACEHOLDER = "[filtered]"

# Control characters except \t (0x09) and \n (0x0A)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

INJECTION_PATTERNS: List[re.Pattern] = [
    # Instruction override attempts
    re.compile(r"ignore\s+(all\s+)?(previous|above|prior)\s+(instructions?|prompts?|context)", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?(previous|above|prior)\s+(instructions?|prompts?|context)", re.IGNORECASE),
    re.compile(r"forget\s+(all\s+)?(previous|above|prior)\s+(instructions?|prompts?|context)", re.IGNORECASE),
    re.compile(r"new\s+instructions?:", re.IGNORECASE),
    re.compile(r"system\s*prompt:", re.IGNORECASE),
    re.compile(r"you\s+are\s+now", re.IGNORECASE),
    re.compile(r"act\s+as\s+if", re.IGNORECASE),
    re.compile(r"pretend\s+(you('re|\s+are)|to\s+be)", re.IGNORECASE),
    re.compile(r"from\s+now\s+on", re.IGNORECASE),
    # Role manipulation
    re.compile(r"\[system\]", re.IGNORECASE),
    re.compile(r"\[assistant\]", re.IGNORECASE),
    re.compile(r"\[user\]", re.IGNORECASE),
    # Delimiter escapes
    re.compile(r"```\s*(system|assistant|user)", re.IGNORECASE),
    re.compile(r"<\|im_(start|end)\|>", re.IGNORECASE),
    re.compile(r"<\|(system|user|assistant)\|>", re.IGNORECASE),
]


def sanitize_for_prompt(text: Any, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Neutralize user text before it is placed inside an LLM instruction.

    Steps:
    1. Truncate to ``max_length`` characters (marker appended when cut)
    2. Drop control characters other than newline and tab
    3. Replace catalogued injection phrasings with a placeholder token

    Args:
        text: User-provided text; anything that is not a string yields ""
        max_length: Maximum number of characters kept from the input

    Returns:
        str: Sanitized text, never raises
    """
    if not text or not isinstance(text, str):
        return ""

    sanitized = text
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + TRUNCATION_MARKER

    sanitized = _CONTROL_CHARS_RE.sub("", sanitized)

    for pattern in INJECTION_PATTERNS:
        sanitized = pattern.sub(FILTERED_PLACEHOLDER, sanitized)

    return sanitized


def sanitize_conversation(
    turns: List[Dict[str, Any]], max_length: int = DEFAULT_MAX_LENGTH
) -> List[Dict[str, str]]:
    """Sanitize prior conversation turns that are re-sent as context.

    Only ``user`` and ``assistant`` roles are kept so a client cannot smuggle
    in an extra system message through the history.

    Args:
        turns: List of ``{"role": ..., "content": ...}`` dicts
        max_length: Per-turn character budget

    Returns:
        List of sanitized turns
    """
    cleaned: List[Dict[str, str]] = []
    for turn in turns or []:
        if not isinstance(turn, dict):
            continue
        role = turn.get("role")
        if role not in ("user", "assistant"):
            continue
        content = sanitize_for_prompt(turn.get("content"), max_length)
        if content:
            cleaned.append({"role": role, "content": content})
    return cleaned
