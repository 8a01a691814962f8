"""
Synthesize stage helpers.

Each cluster gets its own completion call asking for one generic replacement
phrase. Clusters are processed sequentially with a pause between calls, and
a failing cluster is recorded and skipped without aborting the others.

Confidence is a heuristic over cluster shape, not the model's own label:
- base 0.5
- +0.2 for 5+ members, else +0.1 for 3+
- +0.1 when member lengths vary little (variance < 100)
- +0.1 when the replacement is 10-80 chars
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from ..common.schemas import Suggestion
from .clustering import Cluster
from .triggers import DEFAULT_PREFIX, derive_trigger, improve_trigger

logger = logging.getLogger("dryprompt.analysis.synthesis")

AsyncCompleteFn = Callable[[str], Awaitable[str]]

MIN_REPLACEMENT_LENGTH = 5
MAX_REPLACEMENT_LENGTH = 200
QUALITY_THRESHOLD = 0.4
MAX_QUALITY_SUGGESTIONS = 5


SYNTHESIS_PROMPT = """You are analyzing repetitive text patterns to suggest keyboard shortcuts for a productivity app.

TASK: Analyze these similar text prompts and create ONE concise, generic text replacement that captures their common intent.

SIMILAR PROMPTS ({size} total):
{samples}

REQUIREMENTS:
- Create a generic version that works for ALL the prompts above
- Keep it concise but complete (max 100 characters)
- Make it professional and clear
- Focus on the ACTION or INTENT, not specific details
- Suitable for text replacement/autocomplete

RESPONSE FORMAT:
Replacement: [your suggested text replacement]
Confidence: [HIGH/MEDIUM/LOW based on how well the prompts match]

Example:
Replacement: Explain the following code:
Confidence: HIGH"""


@dataclass
class ParsedSynthesis:
    replacement: str
    label: str  # HIGH | MEDIUM | LOW as reported by the model


def build_cluster_prompt(cluster: Cluster, sample_size: int = 5) -> str:
    samples = cluster.member_texts[:sample_size]
    lines = "\n".join(f'{i}. "{text}"' for i, text in enumerate(samples, 1))
    return SYNTHESIS_PROMPT.format(size=cluster.size, samples=lines)


def parse_synthesis_response(response: str) -> Optional[ParsedSynthesis]:
    """
    Extract the replacement and confidence label.

    Returns None when no usable "Replacement:" line is present. A missing
    confidence line defaults to MEDIUM.
    """
    if not response:
        return None

    replacement_match = re.search(r"Replacement:\s*(.+)", response, re.IGNORECASE)
    if not replacement_match:
        logger.debug("Could not find replacement in completion response")
        return None

    replacement = replacement_match.group(1).strip()
    if not MIN_REPLACEMENT_LENGTH <= len(replacement) <= MAX_REPLACEMENT_LENGTH:
        logger.debug("Invalid replacement length: %r", replacement)
        return None

    replacement = re.sub(r"^[\"']|[\"']$", "", replacement).strip()
    if not replacement:
        return None

    confidence_match = re.search(r"Confidence:\s*(HIGH|MEDIUM|LOW)", response, re.IGNORECASE)
    label = confidence_match.group(1).upper() if confidence_match else "MEDIUM"
    return ParsedSynthesis(replacement=replacement, label=label)


def calculate_confidence(cluster: Cluster, replacement: str) -> float:
    confidence = 0.5

    if cluster.size >= 5:
        confidence += 0.2
    elif cluster.size >= 3:
        confidence += 0.1

    lengths = [len(text) for text in cluster.member_texts]
    if lengths:
        mean = sum(lengths) / len(lengths)
        variance = sum((n - mean) ** 2 for n in lengths) / len(lengths)
        if variance < 100:
            confidence += 0.1

    if 10 <= len(replacement) <= 80:
        confidence += 0.1

    return max(0.0, min(1.0, round(confidence, 4)))


async def synthesize_cluster(
    cluster: Cluster,
    complete_fn: AsyncCompleteFn,
    sample_size: int = 5,
    trigger_prefix: str = DEFAULT_PREFIX,
) -> Optional[Suggestion]:
    """
    Run one completion for a cluster.

    Returns:
        The suggestion, or None if the response held no usable replacement

    Raises:
        whatever complete_fn raises
    """
    response = await complete_fn(build_cluster_prompt(cluster, sample_size))
    parsed = parse_synthesis_response(response)
    if parsed is None:
        logger.info("No valid suggestion extracted from cluster of %d items", cluster.size)
        return None

    trigger = improve_trigger(derive_trigger(parsed.replacement, trigger_prefix), parsed.replacement, trigger_prefix)
    return Suggestion(
        trigger=trigger,
        replacement=parsed.replacement,
        source_texts=list(cluster.member_texts),
        confidence=calculate_confidence(cluster, parsed.replacement),
    )


async def synthesize_suggestions(
    clusters: Sequence[Cluster],
    complete_fn: AsyncCompleteFn,
    delay: float = 0.5,
    sample_size: int = 5,
    trigger_prefix: str = DEFAULT_PREFIX,
) -> Tuple[List[Suggestion], List[str]]:
    """
    Synthesize one suggestion per cluster.

    Returns:
        (suggestions sorted by confidence descending, per-cluster error messages)
    """
    suggestions: List[Suggestion] = []
    errors: List[str] = []

    for i, cluster in enumerate(clusters):
        logger.info("Processing cluster %d/%d (%d items)", i + 1, len(clusters), cluster.size)
        try:
            suggestion = await synthesize_cluster(cluster, complete_fn, sample_size, trigger_prefix)
            if suggestion is not None:
                suggestions.append(suggestion)
        except Exception as e:
            logger.error("Error processing cluster %d: %s", i + 1, e)
            errors.append(f"Cluster {i + 1} synthesis failed: {e}")

        if i < len(clusters) - 1 and delay > 0:
            await asyncio.sleep(delay)

    suggestions.sort(key=lambda s: s.confidence, reverse=True)
    logger.info("Generated %d suggestions from %d clusters", len(suggestions), len(clusters))
    return suggestions, errors


def is_valid_suggestion(suggestion: Suggestion) -> bool:
    return (
        bool(suggestion.replacement)
        and MIN_REPLACEMENT_LENGTH <= len(suggestion.replacement) <= MAX_REPLACEMENT_LENGTH
        and suggestion.confidence > 0.3
        and len(suggestion.source_texts) >= 2
    )


def filter_quality_suggestions(suggestions: Sequence[Suggestion]) -> List[Suggestion]:
    """Valid suggestions with confidence >= 0.4, at most five, order kept"""
    return [
        s for s in suggestions
        if is_valid_suggestion(s) and s.confidence >= QUALITY_THRESHOLD
    ][:MAX_QUALITY_SUGGESTIONS]
