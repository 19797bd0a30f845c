"""Token-bounded word-window chunking for message bodies.

Splits a message body into :class:`~src.models.rag.Chunk` objects small
enough for the embedding model's context window.

The policy is deliberately simple and fixed:

1. **Short bodies stay whole** -- if the body's token count is within the
   target (default 512), it becomes exactly one chunk.

2. **Long bodies become word windows** -- otherwise the body is split on
   whitespace and cut into contiguous windows of ``target * 3 // 4``
   words (a word budget standing in for the token budget; ~0.75 words per
   token for English text).  Each window's token count is recomputed, and
   windows that count to zero tokens are dropped.

There is no overlap between windows: the chunks' words, joined with single
spaces, are exactly the body's words.
"""

from __future__ import annotations

from typing import Iterator

import structlog

from src.models.rag import Chunk
from src.services.ingestion.token_counter import TokenCounter

logger = structlog.get_logger(logger_name=__name__)


class ChunkSequence:
    """Lazy, restartable sequence of chunks for one body.

    Token counting happens during iteration, not construction.  Iterating
    twice recomputes the same chunks from the body.
    """

    def __init__(
        self,
        body: str,
        message_id: str,
        target_tokens: int,
        token_counter: TokenCounter,
    ) -> None:
        self._body = body
        self._message_id = message_id
        self._target_tokens = target_tokens
        self._token_counter = token_counter

    @property
    def window_words(self) -> int:
        """Words per window when the body has to be split."""
        return self._target_tokens * 3 // 4

    def __iter__(self) -> Iterator[Chunk]:
        token_len = self._token_counter.count(self._body)
        if token_len <= self._target_tokens:
            yield Chunk(
                message_id=self._message_id,
                index=0,
                text=self._body,
                tokens=token_len,
            )
            return

        words = self._body.split()
        window = self.window_words
        num_windows = -(-len(words) // window)  # ceil division

        index = 0
        for j in range(num_windows):
            window_text = " ".join(words[j * window : (j + 1) * window])
            window_tokens = self._token_counter.count(window_text)
            if window_tokens == 0:
                logger.debug(
                    "chunk_window_dropped",
                    message_id=self._message_id,
                    window=j,
                )
                continue
            yield Chunk(
                message_id=self._message_id,
                index=index,
                text=window_text,
                tokens=window_tokens,
            )
            index += 1

    def __repr__(self) -> str:
        return (
            f"ChunkSequence(message_id={self._message_id!r}, "
            f"target_tokens={self._target_tokens}, body_chars={len(self._body)})"
        )


class TextChunker:
    """Splits message bodies into token-bounded chunks.

    Parameters
    ----------
    token_counter:
        Counter used both for the split decision and for each chunk's
        recorded token count.
    target_tokens:
        Default token budget per chunk (default 512).
    """

    def __init__(self, token_counter: TokenCounter, target_tokens: int = 512) -> None:
        self._validate_target(target_tokens)
        self._token_counter = token_counter
        self._target_tokens = target_tokens

    @property
    def target_tokens(self) -> int:
        return self._target_tokens

    def chunk(
        self,
        body: str,
        message_id: str = "",
        target_tokens: int | None = None,
    ) -> ChunkSequence:
        """Return the chunks of *body* as a lazy :class:`ChunkSequence`.

        Parameters
        ----------
        body:
            The message body to split.
        message_id:
            Identity of the parent message, copied into every chunk.
        target_tokens:
            Token budget for this call; defaults to the chunker's budget.

        Raises
        ------
        ValueError
            If the budget is too small to give a window of at least one word.
        """
        target = self._target_tokens if target_tokens is None else target_tokens
        self._validate_target(target)
        return ChunkSequence(
            body=body,
            message_id=message_id,
            target_tokens=target,
            token_counter=self._token_counter,
        )

    @staticmethod
    def _validate_target(target_tokens: int) -> None:
        if target_tokens * 3 // 4 < 1:
            msg = f"target_tokens must be at least 2, got {target_tokens}"
            raise ValueError(msg)
