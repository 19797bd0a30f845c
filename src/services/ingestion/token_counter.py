"""Byte-pair token counting shared by the chunker and stored token counts.

Chunk sizing and the ``tokens`` column of every stored record must agree,
so the whole pipeline shares one :class:`TokenCounter` (one encoding)
built by :func:`src.main.build_pipeline`.
"""

from __future__ import annotations

import structlog
import tiktoken

logger = structlog.get_logger(logger_name=__name__)


class TokenCounter:
    """Counts tokens with a fixed ``tiktoken`` encoding.

    Parameters
    ----------
    encoding_name:
        Name of the tiktoken encoding (default ``cl100k_base``).  The
        encoding is loaded on first use, not at construction.
    """

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        self._encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None

    @property
    def encoding_name(self) -> str:
        return self._encoding_name

    def count(self, text: str) -> int:
        """Return the number of tokens in *text*; ``0`` for the empty string."""
        if not text:
            return 0
        # Special-token markers typed by a user are counted as plain text.
        return len(self._get_encoding().encode(text, disallowed_special=()))

    def _get_encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self._encoding_name)
            logger.debug("token_encoding_loaded", encoding=self._encoding_name)
        return self._encoding
