"""
Analysis - repeated prompt discovery

Pipeline:
1. Load the current prompt log snapshot
2. Embed entries in batches
3. Cluster embeddings greedily by cosine similarity
4. Synthesize one replacement phrase and trigger per cluster
5. Persist run statistics and archive the processed log
"""

from .clustering import Cluster, cluster_embeddings
from .embedding import EmbeddingResult, embed_entries
from .pipeline import AnalysisPipeline, PipelineResult, Stage, StageError, next_stage
from .triggers import derive_trigger, is_valid_trigger

__all__ = [
    "Cluster",
    "cluster_embeddings",
    "EmbeddingResult",
    "embed_entries",
    "AnalysisPipeline",
    "PipelineResult",
    "Stage",
    "StageError",
    "next_stage",
    "derive_trigger",
    "is_valid_trigger",
]
