"""Custom exception hierarchy for signal-vector-db.

All application exceptions inherit from :class:`SignalVectorError`, which
carries an optional ``provider_name`` so error handlers can identify which
external collaborator (e.g. "ollama_embedding", "sqlite_store") caused the
failure.

The hierarchy is organized by pipeline stage:

    SignalVectorError  (base -- catch-all for any signal-vector-db error)
    +-- ConfigurationError       (startup / missing config)
    +-- NormalizationError       (raw decrypted content cannot be normalized)
    +-- EmbeddingError           (embedding-service failure)
    |   +-- EmbeddingTransientError  (network, timeout, non-2xx -- retryable)
    |   +-- EmbeddingProtocolError   (2xx with malformed body -- not retryable)
    +-- StoreError               (embedding-store failure)
        +-- StoreWriteError          (one record failed -- collected, not raised)
        +-- StoreUnavailableError    (store unreachable for the whole batch)

Classification skips and zero-token chunk windows are expected outcomes,
not errors, and have no exception type.
"""


class SignalVectorError(Exception):
    """Base exception for all signal-vector-db errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for log
    scanning, e.g. ``[ollama_embedding] HTTP 500``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Startup / upstream errors
# ---------------------------------------------------------------------------

class ConfigurationError(SignalVectorError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NormalizationError(SignalVectorError):
    """Raised when a raw content event cannot be turned into a NormalizedMessage."""

    def __init__(
        self,
        message: str = "Message normalization failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding-service errors
# ---------------------------------------------------------------------------

class EmbeddingError(SignalVectorError):
    """Raised when the embedding service call fails."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingTransientError(EmbeddingError):
    """Raised on network errors, timeouts and non-2xx responses.

    The ingestion coordinator retries these with bounded backoff before
    giving up on the chunk.
    """

    def __init__(
        self,
        message: str = "Embedding service unavailable",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self._status_code = status_code
        super().__init__(message=message, provider_name=provider_name)

    @property
    def status_code(self) -> int | None:
        return self._status_code


class EmbeddingProtocolError(EmbeddingError):
    """Raised when a 2xx response does not carry a usable ``embedding`` array.

    Retrying will not help; the chunk is skipped.
    """

    def __init__(
        self,
        message: str = "Malformed embedding response",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------

class StoreError(SignalVectorError):
    """Raised when an embedding-store operation fails."""

    def __init__(
        self,
        message: str = "Embedding store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StoreWriteError(StoreError):
    """Raised for a single record that could not be inserted.

    Stores catch this per record and report it as a ``WriteFailure``; it
    never aborts the rest of the batch.
    """

    def __init__(
        self,
        message: str = "Record insert failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached for any record of a batch.

    This is the one structural failure the ingestion pipeline surfaces to
    its caller.
    """

    def __init__(
        self,
        message: str = "Embedding store is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
