"""Abstract base class for text-embedding service providers.

Defines the contract for turning one chunk of text into a fixed-dimension
vector.  The concrete adapter wraps Ollama's ``/api/embeddings`` endpoint
serving ``nomic-embed-text``; the adapter pattern keeps the ingestion
coordinator independent of the embedding backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation:
#   OllamaEmbeddingProvider — nomic-embed-text via Ollama HTTP (768 dims)
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the ingestion pipeline.

    Implementations must classify failures so the coordinator can apply
    its retry-then-skip policy:

    * :class:`~src.utils.errors.EmbeddingTransientError` -- worth retrying
      (network failure, timeout, non-2xx status).
    * :class:`~src.utils.errors.EmbeddingProtocolError` -- not worth
      retrying (2xx response without a usable vector).
    """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Parameters
        ----------
        text:
            The chunk text to embed.

        Returns
        -------
        list[float]
            The embedding vector with length equal to :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.EmbeddingTransientError
            On transport errors, timeouts and non-2xx responses.
        src.utils.errors.EmbeddingProtocolError
            When a 2xx response lacks a numeric ``embedding`` array of the
            expected length.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must match the dimension the embedding store was created with
        (``768`` for ``nomic-embed-text``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable.

        Implementations should check reachability without generating an
        actual embedding.
        """

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
