"""
Trigger Derivation

Turns a replacement phrase into the short token a user types to expand it,
e.g. "Explain the following code:" -> ";explaincode".

Everything here is pure and deterministic.
"""

import re
from typing import List

DEFAULT_PREFIX = ";"
ACCEPTED_PREFIXES = (";", "-")
DEFAULT_TRIGGER_BODY = "auto"

MIN_TRIGGER_LENGTH = 4  # after padding, prefix included
MAX_TRIGGER_LENGTH = 15  # after truncation, prefix included
VALID_LENGTH_RANGE = (3, 20)

ACTION_KEYWORDS = frozenset([
    "explain", "describe", "analyze", "review", "check", "test", "debug",
    "create", "generate", "build", "make", "write", "add", "insert",
    "update", "modify", "change", "edit", "fix", "correct", "improve",
    "remove", "delete", "clean", "clear", "reset", "undo",
    "find", "search", "locate", "get", "fetch", "retrieve",
    "show", "display", "print", "output", "list", "enumerate",
    "compare", "match", "validate", "verify", "confirm",
    "open", "close", "save", "load", "import", "export",
    "start", "stop", "run", "execute", "launch", "quit",
])

SUBJECT_KEYWORDS = frozenset([
    "code", "function", "method", "class", "variable", "file", "folder",
    "test", "bug", "error", "issue", "problem", "solution",
    "data", "database", "query", "table", "record", "field",
    "user", "account", "login", "password", "session", "auth",
    "api", "endpoint", "request", "response", "json", "xml",
    "config", "setting", "option", "parameter", "value",
    "server", "client", "network", "connection", "port",
    "component", "module", "plugin", "library", "framework",
])

STOP_WORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "about", "into", "through", "during",
    "before", "after", "above", "below", "up", "down", "out", "off",
    "over", "under", "again", "further", "then", "once", "here", "there",
    "when", "where", "why", "how", "all", "any", "both", "each", "few",
    "more", "most", "other", "some", "such", "no", "nor", "not", "only",
    "own", "same", "so", "than", "too", "very", "can", "will", "just",
    "should", "now", "this", "that", "these", "those", "is", "are", "was",
    "were", "be", "been", "being", "have", "has", "had", "do", "does", "did",
])

# Triggers likely to collide with editor or OS shortcuts
CONFLICTING_TRIGGERS = frozenset([
    ";cmd", ";ctrl", ";alt", ";shift",
    ";copy", ";paste", ";cut", ";undo",
    ";save", ";open", ";close", ";quit",
    ";new", ";print", ";find",
])

_NON_LETTERS = re.compile(r"[^a-z]+")


def _check_prefix(prefix: str) -> None:
    if prefix not in ACCEPTED_PREFIXES:
        raise ValueError(f"Unsupported trigger prefix: {prefix!r} (expected one of {ACCEPTED_PREFIXES})")


def significant_words(text: str) -> List[str]:
    """Lowercase letter-only words longer than 2 chars, stopwords removed, in order."""
    if not text or not isinstance(text, str):
        return []
    normalized = _NON_LETTERS.sub(" ", text.lower()).split()
    return [word for word in normalized if len(word) > 2 and word not in STOP_WORDS]


def derive_trigger(replacement: str, prefix: str = DEFAULT_PREFIX) -> str:
    """
    Derive a trigger for a replacement phrase.

    Composition, first match wins:
    1. first action keyword + first subject keyword
    2. action keyword + first other word
    3. subject keyword, preceded by the first word when they differ
    4. first two words
    5. the default token (";auto")

    The result is truncated to 15 chars and padded with "x" to at least 4.
    """
    _check_prefix(prefix)
    words = significant_words(replacement)
    if not words:
        return prefix + DEFAULT_TRIGGER_BODY

    action = next((w for w in words if w in ACTION_KEYWORDS), None)
    subject = next((w for w in words if w in SUBJECT_KEYWORDS), None)

    if action and subject:
        body = action + subject
    elif action:
        other = next((w for w in words if w != action), "")
        body = action + other
    elif subject:
        first = words[0]
        body = subject if first == subject else first + subject
    else:
        body = "".join(words[:2])

    trigger = (prefix + body)[:MAX_TRIGGER_LENGTH]
    while len(trigger) < MIN_TRIGGER_LENGTH:
        trigger += "x"
    return trigger


def is_valid_trigger(trigger: str) -> bool:
    """A prefix char followed by lowercase letters, 3 to 20 chars in total."""
    if not trigger or not isinstance(trigger, str):
        return False
    if trigger[0] not in ACCEPTED_PREFIXES:
        return False
    low, high = VALID_LENGTH_RANGE
    if not low <= len(trigger) <= high:
        return False
    return re.fullmatch(r"[a-z]+", trigger[1:]) is not None


def alternative_triggers(replacement: str, prefix: str = DEFAULT_PREFIX) -> List[str]:
    """
    Candidate triggers, primary first: first+last word, initials, and the
    first word without vowels. Only valid, distinct triggers are returned.
    """
    _check_prefix(prefix)
    candidates = [derive_trigger(replacement, prefix)]
    words = significant_words(replacement)

    if len(words) >= 2:
        candidates.append(prefix + words[0] + words[-1])
        initials = "".join(w[0] for w in words)
        if len(initials) >= 3:
            candidates.append(prefix + initials)

    if words and len(words[0]) > 4:
        abbreviated = re.sub(r"[aeiou]", "", words[0])
        if len(abbreviated) >= 3:
            candidates.append(prefix + abbreviated)

    seen = set()
    result = []
    for candidate in candidates:
        if candidate not in seen and is_valid_trigger(candidate):
            seen.add(candidate)
            result.append(candidate)
    return result


def has_likely_conflicts(trigger: str) -> bool:
    """True if the trigger (with any accepted prefix) shadows a common command."""
    if not trigger:
        return False
    return (DEFAULT_PREFIX + trigger[1:]) in CONFLICTING_TRIGGERS


def improve_trigger(trigger: str, replacement: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Regenerate invalid triggers and swap conflicting ones for an alternative."""
    if not is_valid_trigger(trigger):
        return derive_trigger(replacement, prefix)
    if has_likely_conflicts(trigger):
        for alternative in alternative_triggers(replacement, prefix):
            if not has_likely_conflicts(alternative):
                return alternative
        return trigger + "x"
    return trigger
