"""Embedding provider implementations.

Embeddings convert one chunk of message text into a numeric vector that
captures its meaning.  The vectors are stored by an
:class:`~src.interfaces.vector_store_provider.IEmbeddingStore`.

One implementation of IEmbeddingProvider:
    OllamaEmbeddingProvider — nomic-embed-text via a local Ollama server
    (768 dims).  Free and local, no API key.
"""

from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

__all__ = ["OllamaEmbeddingProvider"]
