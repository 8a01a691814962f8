"""
Embed stage helpers.

Filters log entries down to embeddable text and embeds them in fixed-size
batches with a pause between batches. A failing batch aborts the whole
stage: partial embeddings are never returned.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Sequence, Tuple

from ..common.schemas import LogEntry

logger = logging.getLogger("dryprompt.analysis.embedding")

AsyncEmbedFn = Callable[[List[str]], Awaitable[List[List[float]]]]


class NoEmbeddableTextError(ValueError):
    """Every entry was shorter than the minimum embed length."""
    pass


@dataclass
class EmbeddingResult:
    """One embedded log entry"""
    text: str
    vector: List[float]
    original_index: int  # position in the loaded snapshot


def select_embeddable(entries: Sequence[LogEntry], min_length: int = 10) -> List[Tuple[int, str]]:
    """(snapshot index, stripped text) for every entry long enough to embed"""
    selected = []
    for index, entry in enumerate(entries):
        text = (entry.text or "").strip()
        if len(text) >= min_length:
            selected.append((index, text))
    return selected


async def embed_entries(
    entries: Sequence[LogEntry],
    embed_fn: AsyncEmbedFn,
    batch_size: int = 100,
    delay: float = 0.2,
    min_length: int = 10,
) -> List[EmbeddingResult]:
    """
    Embed log entries in batches.

    Raises:
        NoEmbeddableTextError: if no entry reaches min_length
        ProviderError (or subclass): propagated from the first failing batch
        ValueError: if a batch returns the wrong number of vectors
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    selected = select_embeddable(entries, min_length)
    if not selected:
        raise NoEmbeddableTextError("No valid texts found for embedding (all texts too short)")

    logger.info("Embedding %d valid texts (filtered from %d)", len(selected), len(entries))

    results: List[EmbeddingResult] = []
    total_batches = (len(selected) + batch_size - 1) // batch_size
    for batch_number, start in enumerate(range(0, len(selected), batch_size), 1):
        batch = selected[start:start + batch_size]
        texts = [text for _, text in batch]
        logger.debug("Processing embedding batch %d/%d", batch_number, total_batches)

        vectors = await embed_fn(texts)
        if len(vectors) != len(texts):
            raise ValueError(
                f"Embedding batch {batch_number} returned {len(vectors)} vectors for {len(texts)} texts"
            )

        for (index, text), vector in zip(batch, vectors):
            results.append(EmbeddingResult(text=text, vector=list(vector), original_index=index))

        if start + batch_size < len(selected) and delay > 0:
            await asyncio.sleep(delay)

    logger.info("Generated %d embeddings", len(results))
    return results
