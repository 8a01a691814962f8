"""
Embedding Service

Generates text embeddings with the OpenAI embeddings API and provides the
cosine similarity used by clustering.
"""

import logging
from typing import List, Optional

import numpy as np

from .errors import translate_provider_error

logger = logging.getLogger("dryprompt.common.embedding_service")


class EmbeddingService:
    """
    OpenAI-backed embedding service.

    One instance is built per analysis run from the credential held in the
    secret store, so a credential update takes effect on the next run.
    """

    def __init__(self, api_key: Optional[str], model: str = "text-embedding-3-small"):
        self._model = model
        self._client = None

        if not api_key:
            logger.info("OpenAI API key not provided, embedding service unavailable")
            return
        try:
            from openai import OpenAI

            self._client = OpenAI(api_key=api_key)
            logger.debug("Initialized embedding service with model=%s", model)
        except ImportError:
            logger.warning("openai package not installed")
        except Exception as e:
            logger.warning("Failed to initialize OpenAI embeddings client: %s", e)

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._client is not None

    @property
    def model(self) -> str:
        return self._model

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors, in input order

        Raises:
            AuthError, QuotaError, RateLimitError, ProviderError
        """
        if not self._client:
            raise RuntimeError("Embedding service not initialized")

        if not texts:
            return []

        try:
            response = self._client.embeddings.create(model=self._model, input=list(texts))
        except Exception as e:
            raise translate_provider_error(e) from e

        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    A zero-magnitude vector yields 0.0. The result is clipped to [-1, 1] to
    absorb floating point drift.

    Raises:
        ValueError: if the vectors have different dimensions
    """
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)

    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    similarity = float(np.dot(v1, v2) / (norm1 * norm2))
    return max(-1.0, min(1.0, similarity))


def is_valid_embedding(vector: List[float]) -> bool:
    """Check that a vector is non-empty and free of NaN values"""
    if vector is None or len(vector) == 0:
        return False
    arr = np.asarray(vector, dtype=float)
    return bool(np.all(np.isfinite(arr)))
