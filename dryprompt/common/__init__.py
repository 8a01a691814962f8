"""
DryPrompt Common Module

Shared infrastructure for capture, analysis and the application controller.
"""

from .config import DryPromptConfig, load_config
from .embedding_service import EmbeddingService, cosine_similarity
from .errors import AuthError, ProviderError, QuotaError, RateLimitError
from .llm_client import LLMClient
from .secret_store import FileSecretStore, SecretStore

__all__ = [
    "DryPromptConfig",
    "load_config",
    "EmbeddingService",
    "cosine_similarity",
    "AuthError",
    "ProviderError",
    "QuotaError",
    "RateLimitError",
    "LLMClient",
    "FileSecretStore",
    "SecretStore",
]
