"""
Prompt Filter

Cheap heuristic deciding whether a flushed text buffer looks like a prompt
worth logging. No model calls happen here; this runs on every flush.
"""

import re
from typing import Tuple

# Action / question vocabulary that marks text as prompt-like
PROMPT_INDICATORS = (
    "explain", "describe", "how", "what", "why",
    "create", "generate", "write", "make", "build",
    "show", "tell me", "can you", "please",
    "review", "check", "debug", "fix", "help", "analyze",
)

_INDICATOR_PATTERNS = [
    re.compile(r"\b" + re.escape(word) + r"\b", re.IGNORECASE)
    for word in PROMPT_INDICATORS
]


def evaluate_buffer(
    text: str,
    min_length: int = 10,
    min_distinct_chars: int = 4,
) -> Tuple[bool, str]:
    """
    Classify a buffer.

    Returns:
        (keep, reason) where reason names the rule that decided
    """
    trimmed = (text or "").strip()

    if len(trimmed) < min_length:
        return False, "too_short"

    if len(set(trimmed.lower())) < min_distinct_chars:
        return False, "low_variety"

    if trimmed.endswith(("?", ":")):
        return True, "trailing_punctuation"

    for pattern in _INDICATOR_PATTERNS:
        if pattern.search(trimmed):
            return True, "indicator"

    return False, "no_indicator"


def is_likely_prompt(text: str, min_length: int = 10, min_distinct_chars: int = 4) -> bool:
    keep, _ = evaluate_buffer(text, min_length, min_distinct_chars)
    return keep
