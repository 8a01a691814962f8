"""
Greedy similarity clustering.

Single pass in encounter order: each unassigned embedding seeds a cluster and
pulls in every later unassigned embedding whose similarity to the seed meets
the threshold. Assignment depends on order, so callers must keep the input
order stable for results to be reproducible.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import numpy as np

from ..common.embedding_service import cosine_similarity, is_valid_embedding
from .embedding import EmbeddingResult

logger = logging.getLogger("dryprompt.analysis.clustering")


@dataclass
class Cluster:
    member_texts: List[str]
    centroid: List[float]
    size: int


def calculate_centroid(vectors: Sequence[Sequence[float]]) -> List[float]:
    """Element-wise mean of equally sized vectors; [] for no vectors."""
    if not vectors:
        return []
    return np.mean(np.asarray(vectors, dtype=float), axis=0).tolist()


def cluster_embeddings(
    embeddings: Sequence[EmbeddingResult],
    threshold: float = 0.7,
    min_cluster_size: int = 2,
    max_clusters: int = 10,
) -> List[Cluster]:
    """
    Group embeddings whose similarity to a seed is >= threshold.

    Returns:
        Clusters of at least min_cluster_size members, largest first (ties
        keep discovery order), at most max_clusters of them.
    """
    valid = [e for e in embeddings if e.text and e.text.strip() and is_valid_embedding(e.vector)]
    skipped = len(embeddings) - len(valid)
    if skipped:
        logger.warning("Skipping %d invalid embeddings", skipped)
    if not valid:
        return []

    processed = set()
    clusters: List[Cluster] = []

    for i, seed in enumerate(valid):
        if i in processed:
            continue
        processed.add(i)
        members = [seed.text]
        vectors = [seed.vector]

        for j in range(i + 1, len(valid)):
            if j in processed:
                continue
            other = valid[j]
            if len(other.vector) != len(seed.vector):
                continue
            if cosine_similarity(seed.vector, other.vector) >= threshold:
                members.append(other.text)
                vectors.append(other.vector)
                processed.add(j)

        if len(members) >= min_cluster_size:
            clusters.append(Cluster(
                member_texts=members,
                centroid=calculate_centroid(vectors),
                size=len(members),
            ))

    # sorted() is stable, so equal sizes keep discovery order
    clusters = sorted(clusters, key=lambda c: c.size, reverse=True)[:max_clusters]
    logger.info("Found %d clusters from %d embeddings", len(clusters), len(valid))
    return clusters


def clustering_stats(clusters: Sequence[Cluster]) -> Dict[str, Any]:
    if not clusters:
        return {
            "total_clusters": 0,
            "total_items": 0,
            "average_size": 0.0,
            "largest_size": 0,
            "smallest_size": 0,
        }
    sizes = [c.size for c in clusters]
    return {
        "total_clusters": len(clusters),
        "total_items": sum(sizes),
        "average_size": sum(sizes) / len(sizes),
        "largest_size": max(sizes),
        "smallest_size": min(sizes),
    }
