"""Bounded stack of full-state snapshots for undo."""

from __future__ import annotations

import copy
import logging
from typing import List, Optional

from shelfcut.contracts import Snapshot

logger = logging.getLogger(__name__)


class HistoryManager:
    """Keeps at most ``capacity`` snapshots, newest last.

    The newest entry always mirrors the live state, so undo pops it and hands
    back the entry below for a full replace.
    """

    def __init__(self, capacity: int = 20):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.capacity = capacity
        self._entries: List[Snapshot] = []

    def __len__(self) -> int:
        return len(self._entries)

    def save_snapshot(self, snapshot: Snapshot) -> bool:
        """Push ``snapshot`` unless it equals the newest entry; True when pushed."""
        if self._entries and self._entries[-1].same_state(snapshot):
            return False
        self._entries.append(copy.deepcopy(snapshot))
        if len(self._entries) > self.capacity:
            del self._entries[0]
        return True

    def undo(self) -> Optional[Snapshot]:
        if len(self._entries) <= 1:
            logger.info("Nothing to undo")
            return None
        self._entries.pop()
        return copy.deepcopy(self._entries[-1])

    def latest(self) -> Optional[Snapshot]:
        return copy.deepcopy(self._entries[-1]) if self._entries else None

    def reset(self) -> None:
        self._entries.clear()
