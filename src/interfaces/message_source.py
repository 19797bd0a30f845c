"""Abstract base class for upstream message sources.

The messaging client (decryption, sessions, device linking) lives outside
this project.  The pipeline only sees it through this pull-based
interface: ask for the next event, get back a tagged
:data:`~src.models.message.SourceEvent`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.message import ContactsSyncMarker, ContentEvent, EndOfBacklog


# Concrete implementation:
#   JsonlMessageSource — replays a JSON-lines export (src/providers/source/)
class IMessageSource(ABC):
    """Contract for a sequential stream of upstream events."""

    @abstractmethod
    async def next_event(self) -> EndOfBacklog | ContactsSyncMarker | ContentEvent | None:
        """Return the next event, waiting for one if necessary.

        Returns
        -------
        EndOfBacklog | ContactsSyncMarker | ContentEvent | None
            The next event in arrival order, or ``None`` once the source is
            closed and has nothing more to deliver.
        """

    async def close(self) -> None:
        """Release resources held by the source."""
