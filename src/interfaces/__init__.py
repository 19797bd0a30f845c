"""Public interface definitions for all external collaborators.

Every external service the pipeline touches (the messaging client, the
embedding server, the embedding store, the attachment directory) is
accessed through the abstract base classes defined in this package.
Concrete adapters implement these interfaces and are injected at runtime,
so unit tests can swap in fakes and a backend can be replaced by changing
one factory in ``src/main.py``.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    IEmbeddingProvider     →  OllamaEmbeddingProvider
    IEmbeddingStore        →  SQLiteEmbeddingStore, ChromaDBEmbeddingStore
    IMessageSource         →  JsonlMessageSource
    IAttachmentStore       →  LocalAttachmentStore
"""

from src.interfaces.attachment_provider import IAttachmentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.message_source import IMessageSource
from src.interfaces.vector_store_provider import IEmbeddingStore

__all__ = [
    "IAttachmentStore",
    "IEmbeddingProvider",
    "IEmbeddingStore",
    "IMessageSource",
]
