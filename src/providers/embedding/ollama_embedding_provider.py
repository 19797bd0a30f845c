"""Ollama embedding provider adapter (local/free).

Wraps Ollama's native ``/api/embeddings`` endpoint to implement
:class:`IEmbeddingProvider` using ``nomic-embed-text`` (768 dimensions).
Runs locally with no API key required.

One request embeds one chunk:

    POST {ollama_base_url}/api/embeddings
    {"model": "nomic-embed-text", "prompt": "<chunk text, newlines as spaces>"}

    200 OK
    {"embedding": [0.0123, -0.0456, ...]}

Failures are split into two kinds so the ingestion coordinator can decide
whether to retry:

* transport errors, timeouts and non-2xx statuses raise
  :class:`EmbeddingTransientError`;
* a 2xx response without a numeric ``embedding`` array of the configured
  dimension raises :class:`EmbeddingProtocolError`.

This adapter never retries on its own.
"""

from __future__ import annotations

import json
from numbers import Real
from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingProtocolError, EmbeddingTransientError

logger = structlog.get_logger(logger_name=__name__)

_EMBEDDINGS_PATH = "/api/embeddings"
_TAGS_PATH = "/api/tags"
_AVAILABILITY_TIMEOUT = 3.0


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an Ollama server.

    Parameters
    ----------
    settings:
        Application settings; supplies ``ollama_base_url``,
        ``embedding_model``, ``embedding_dimension`` and
        ``embedding_timeout``.
    http_client:
        Optional shared :class:`httpx.AsyncClient`.  When omitted the
        provider creates its own and closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.embedding_model
        self._dimension = settings.embedding_dimension
        self._timeout = settings.embedding_timeout
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._timeout)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed_single(self, text: str) -> list[float]:
        """Embed one chunk of text.

        Newlines in *text* are replaced by spaces before sending.
        """
        payload = {"model": self._model, "prompt": text.replace("\n", " ")}
        url = f"{self._base_url}{_EMBEDDINGS_PATH}"

        try:
            response = await self._http.post(url, json=payload, timeout=self._timeout)
        except httpx.TimeoutException as exc:
            raise EmbeddingTransientError(
                message=f"Embedding request timed out after {self._timeout}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingTransientError(
                message=f"Embedding request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.is_success:
            detail = self._error_detail(response)
            message = f"Embedding service returned HTTP {response.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise EmbeddingTransientError(
                message=message,
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            )

        vector = self._parse_embedding(response)
        logger.debug(
            "ollama_embedding_generated",
            model=self._model,
            chars=len(text),
            dimension=len(vector),
        )
        return vector

    def get_dimension(self) -> int:
        """Return the configured dimension (768 for nomic-embed-text)."""
        return self._dimension

    def get_provider_name(self) -> str:
        return "ollama_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server is reachable."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(
                f"{self._base_url}{_TAGS_PATH}", timeout=_AVAILABILITY_TIMEOUT
            )
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def _parse_embedding(self, response: httpx.Response) -> list[float]:
        try:
            data: Any = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise EmbeddingProtocolError(
                message="Embedding response is not valid JSON",
                provider_name=self.get_provider_name(),
            ) from exc

        if not isinstance(data, dict) or "embedding" not in data:
            raise EmbeddingProtocolError(
                message="Embedding response has no 'embedding' field",
                provider_name=self.get_provider_name(),
            )

        raw = data["embedding"]
        if not isinstance(raw, list):
            raise EmbeddingProtocolError(
                message=f"'embedding' is {type(raw).__name__}, expected an array",
                provider_name=self.get_provider_name(),
            )

        # bool is a Real subclass; reject it explicitly
        if any(isinstance(v, bool) or not isinstance(v, Real) for v in raw):
            raise EmbeddingProtocolError(
                message="'embedding' contains non-numeric values",
                provider_name=self.get_provider_name(),
            )

        if len(raw) != self._dimension:
            raise EmbeddingProtocolError(
                message=(
                    f"'embedding' has {len(raw)} dimensions, "
                    f"expected {self._dimension}"
                ),
                provider_name=self.get_provider_name(),
            )

        return [float(v) for v in raw]

    @staticmethod
    def _error_detail(response: httpx.Response) -> str | None:
        """Pull Ollama's ``{"error": "..."}`` message out of a failed response."""
        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if isinstance(data, dict) and isinstance(data.get("error"), str):
            return data["error"]
        return None
