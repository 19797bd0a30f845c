"""Utility modules for signal-vector-db.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at
  SignalVectorError; embedding and store failures each have their own
  subclasses so the coordinator can tell retryable from fatal.
- **concurrency** -- semaphore-bounded gather used when a message's chunks
  are embedded concurrently; results come back in submission order.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production, plus a
  per-message context binder.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    EmbeddingProtocolError,
    EmbeddingTransientError,
    NormalizationError,
    SignalVectorError,
    StoreError,
    StoreUnavailableError,
    StoreWriteError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import bind_message_context, configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "EmbeddingError",
    "EmbeddingProtocolError",
    "EmbeddingTransientError",
    "NormalizationError",
    "SignalVectorError",
    "StoreError",
    "StoreUnavailableError",
    "StoreWriteError",
    "bind_message_context",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
