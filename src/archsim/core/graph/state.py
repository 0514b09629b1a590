"""ActiveGraphState - holder of the currently deployed GraphCollection.

Single writer, many readers, copy-on-write:
- install() builds a new immutable ActiveSnapshot and swaps one reference
- readers grab the reference once and keep a complete snapshot for the
  whole request, even if a deploy lands meanwhile

The state is process-local. Horizontally scaled instances each hold their
own active graph; nothing here synchronizes them.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime

from archsim.core.graph.model import GraphCollection

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ActiveSnapshot:
    """An installed collection and the moment it was installed."""

    graphs: GraphCollection
    updated_at: datetime

    @property
    def updated_at_iso(self) -> str:
        return self.updated_at.isoformat()


class ActiveGraphState:
    """Holds the deployed graph snapshot.

    Example:
        >>> state = ActiveGraphState()
        >>> state.current() is None
        True
        >>> state.install(graphs)
        >>> snapshot = state.snapshot()  # read once, use for the whole request
    """

    def __init__(self) -> None:
        self._snapshot: ActiveSnapshot | None = None
        self._write_lock = threading.Lock()

    def install(self, collection: GraphCollection) -> ActiveSnapshot:
        """Atomically replace the active graph.

        The collection is deep-copied so later changes to the caller's
        object never leak into the installed snapshot.

        Returns:
            The newly installed snapshot.
        """
        snapshot = ActiveSnapshot(graphs=copy.deepcopy(collection), updated_at=_utc_now())
        with self._write_lock:
            self._snapshot = snapshot
        logger.info(
            "graph_installed: tabs=%s nodes=%d", ",".join(snapshot.graphs.tabs), len(snapshot.graphs)
        )
        return snapshot

    def snapshot(self) -> ActiveSnapshot | None:
        """Return the current snapshot (graphs and timestamp together)."""
        return self._snapshot

    def current(self) -> GraphCollection | None:
        snapshot = self._snapshot
        return snapshot.graphs if snapshot else None

    def current_updated_at(self) -> datetime | None:
        snapshot = self._snapshot
        return snapshot.updated_at if snapshot else None

    def clear(self) -> None:
        """Drop the active graph (back to the process-start state)."""
        with self._write_lock:
            self._snapshot = None
