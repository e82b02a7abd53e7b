"""
Embedding Generation
====================

Turns text into vectors through any OpenAI-compatible embeddings API
(OpenAI, a local Ollama, or another vendor selected by base_url).

    "How do I reset my password?"   → [0.02, -0.15, 0.89, ...]
    "I forgot my login credentials" → [0.03, -0.14, 0.87, ...]

Similar meanings give similar vectors, which is what semantic search
compares.

Caching:
    Vectors are cached in memory keyed by a hash of the text, so
    re-indexing unchanged chunks does not call the API again.

Dimension:
    Every vector in one index must have the same length. The expected
    dimension comes from configuration or from the first vector returned;
    anything else raises EmbeddingDimensionError.
"""

import hashlib
from typing import Sequence

from openai import APIError, AsyncOpenAI

from lumina.rag.models import EmbeddingDimensionError, RAGError
from lumina.utils.config import RAGConfig
from lumina.utils.logger import Logger

logger = Logger("Embeddings")


class Embedder:
    """
    Generates text embeddings.

    Example:
        embedder = Embedder(RAGConfig(embedding_api_key="sk-..."))

        vector = await embedder.embed("How do I use this feature?")
        vectors = await embedder.embed_batch(["First note", "Second note"])
    """

    def __init__(self, config: RAGConfig, client: AsyncOpenAI | None = None):
        """
        Initialize the embedder.

        Args:
            config: Retrieval configuration (model, key, base URL, batch size)
            client: Pre-built client, mainly for tests
        """
        self.model = config.embedding_model
        self.batch_size = max(1, config.embedding_batch_size)
        self.dimensions = config.embedding_dimensions
        self._send_dimensions = config.embedding_dimensions is not None
        self.client = client or AsyncOpenAI(
            api_key=config.embedding_api_key or "not-needed",
            base_url=config.embedding_base_url,
        )

        # Key: hash of text, Value: embedding vector
        self._cache: dict[str, list[float]] = {}

        logger.info(f"Embedder initialized with model: {self.model}")

    def _hash_text(self, text: str) -> str:
        """Create a hash key for caching."""
        return hashlib.md5(text.encode()).hexdigest()

    def _check_dimension(self, vector: list[float]) -> None:
        if self.dimensions is None:
            self.dimensions = len(vector)
            logger.debug(f"Embedding dimension fixed at {self.dimensions}")
        elif len(vector) != self.dimensions:
            raise EmbeddingDimensionError(
                f"embedding has {len(vector)} dimensions, expected {self.dimensions}"
            )

    async def _request(self, texts: list[str]) -> list[list[float]]:
        kwargs = {"model": self.model, "input": texts}
        if self._send_dimensions:
            kwargs["dimensions"] = self.dimensions
        try:
            response = await self.client.embeddings.create(**kwargs)
        except APIError as e:
            raise RAGError(f"embedding request failed: {e}") from e

        # The API may return items out of order; index is authoritative
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise RAGError(f"embedding API returned {len(data)} vectors for {len(texts)} inputs")
        return [list(item.embedding) for item in data]

    async def embed(self, text: str) -> list[float]:
        """
        Generate an embedding for a single text.

        Args:
            text: The text to embed

        Returns:
            Vector embedding as a list of floats
        """
        cache_key = self._hash_text(text)
        if cache_key in self._cache:
            logger.debug("Embedding cache hit")
            return self._cache[cache_key]

        embedding = (await self._request([text]))[0]
        self._check_dimension(embedding)
        self._cache[cache_key] = embedding

        logger.debug(f"Generated embedding (dim={len(embedding)})")
        return embedding

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts, batch_size at a time.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors (same order as input)
        """
        if not texts:
            return []

        results: list[list[float] | None] = []
        texts_to_generate: list[tuple[int, str]] = []

        for i, text in enumerate(texts):
            cache_key = self._hash_text(text)
            if cache_key in self._cache:
                results.append(self._cache[cache_key])
            else:
                results.append(None)  # Placeholder
                texts_to_generate.append((i, text))

        if not texts_to_generate:
            logger.debug(f"All {len(texts)} embeddings found in cache")
            return [r for r in results if r is not None]

        logger.debug(f"Generating {len(texts_to_generate)} embeddings in batches of {self.batch_size}")

        for start in range(0, len(texts_to_generate), self.batch_size):
            batch = texts_to_generate[start:start + self.batch_size]
            vectors = await self._request([text for _, text in batch])

            for (original_index, text), embedding in zip(batch, vectors):
                self._check_dimension(embedding)
                results[original_index] = embedding
                self._cache[self._hash_text(text)] = embedding

        return [r for r in results if r is not None]

    def clear_cache(self) -> None:
        """Clear the embedding cache."""
        self._cache.clear()
        logger.info("Embedding cache cleared")

    def get_cache_size(self) -> int:
        """Get the number of cached embeddings."""
        return len(self._cache)
