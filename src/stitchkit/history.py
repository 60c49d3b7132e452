"""
Snapshot-based undo/redo over the whole layer stack.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional

from .layers import LayerStack

MAX_HISTORY = 100


@dataclass
class HistoryEntry:
    """Independent deep copy of a layer stack (layers + active index)."""
    stack: LayerStack
    timestamp: float = field(default_factory=time.time)


class History:
    """
    Bounded list of snapshots with a current index.

    Callers invoke :meth:`save` immediately before a mutation; nothing is
    recorded automatically. ``index`` points at the snapshot that the next
    undo restores. The first undo from the tip keeps the live state in a
    separate slot so that redo can return to it; that slot never counts
    against ``max_entries``.
    """

    def __init__(self, max_entries: int = MAX_HISTORY):
        if max_entries < 1:
            raise ValueError("History needs room for at least one entry")
        self.max_entries = max_entries
        self.entries: List[HistoryEntry] = []
        self.index = -1
        self._tip: Optional[HistoryEntry] = None

    def __len__(self) -> int:
        return len(self.entries)

    def save(self, stack: LayerStack):
        """Record ``stack`` before a mutation, dropping any redo entries."""
        del self.entries[self.index + 1:]
        self._tip = None
        self.entries.append(HistoryEntry(stack=stack.copy()))
        while len(self.entries) > self.max_entries:
            self.entries.pop(0)
        self.index = len(self.entries) - 1

    def can_undo(self) -> bool:
        return self.index >= 0

    def can_redo(self) -> bool:
        next_index = self.index + 2
        if next_index < len(self.entries):
            return True
        return next_index == len(self.entries) and self._tip is not None

    def undo(self, stack: LayerStack) -> bool:
        """Restore the previous snapshot into ``stack``; False when there is none."""
        if not self.can_undo():
            return False
        if self.index == len(self.entries) - 1:
            self._tip = HistoryEntry(stack=stack.copy())
        stack.restore(self.entries[self.index].stack)
        self.index -= 1
        return True

    def redo(self, stack: LayerStack) -> bool:
        """Restore the next snapshot into ``stack``; False when there is none."""
        if not self.can_redo():
            return False
        next_index = self.index + 2
        entry = self.entries[next_index] if next_index < len(self.entries) else self._tip
        stack.restore(entry.stack)
        self.index += 1
        return True

    def clear(self):
        self.entries.clear()
        self.index = -1
        self._tip = None
