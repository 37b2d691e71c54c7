"""
Embeddings model factory for the long-term memory store.
Query embeddings are LRU-cached since recall queries repeat often.
"""

from typing import Literal
from functools import lru_cache
from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings
from langchain_google_genai import GoogleGenerativeAIEmbeddings

from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)


class CachedEmbeddingsWrapper(Embeddings):
    """Adds an LRU cache in front of embed_query. Stored snippets are not cached."""

    def __init__(self, base_embeddings: Embeddings, cache_size: int = 100):
        self.base_embeddings = base_embeddings
        self._cached_embed_query = lru_cache(maxsize=cache_size)(self._embed_query_impl)

    def _embed_query_impl(self, text: str) -> tuple[float, ...]:
        # tuples are hashable, lists are not
        return tuple(self.base_embeddings.embed_query(text))

    def embed_query(self, text: str) -> list[float]:
        return list(self._cached_embed_query(text))

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return self.base_embeddings.embed_documents(texts)


def get_embeddings_model(
    provider: Literal["openai", "google"],
    model: str,
    api_key: str,
    cache_size: int = 100,
) -> Embeddings:
    """
    Creates the embeddings model used for memory snippets.

    Args:
        provider: Embeddings provider ("openai" or "google")
        model: Model identifier (e.g., "text-embedding-3-small")
        api_key: API key for the provider
        cache_size: LRU cache size for query embeddings (0 to disable)

    Returns:
        Embeddings model, cached when cache_size > 0

    Raises:
        ValueError: If provider is not supported
    """
    logger.info("embeddings_model_initializing", provider=provider, model=model)

    if provider == "google":
        base_embeddings = GoogleGenerativeAIEmbeddings(google_api_key=api_key, model=model)
    elif provider == "openai":
        base_embeddings = OpenAIEmbeddings(api_key=api_key, model=model)
    else:
        raise ValueError(
            f"Unsupported embeddings provider: {provider}. Use 'openai' or 'google'"
        )

    if cache_size > 0:
        return CachedEmbeddingsWrapper(base_embeddings, cache_size)
    return base_embeddings
