"""Embedding store implementations.

SQLite is the default backend: one append-only ``embeddings`` table at
SQLITE_DB_PATH (default: data/embeddings.db).  ChromaDB is available as an
alternative (STORE_BACKEND=chromadb) and persists at CHROMADB_PERSIST_DIR.

To add another backend, create a class implementing IEmbeddingStore and
register it in main.py.
"""

from src.providers.vector_store.chromadb_embedding_store import ChromaDBEmbeddingStore
from src.providers.vector_store.sqlite_embedding_store import SQLiteEmbeddingStore

__all__ = ["ChromaDBEmbeddingStore", "SQLiteEmbeddingStore"]
