"""
History module.

Undo/redo is a single linear list of immutable snapshots and a cursor::

    history = History(())
    history.commit((rect,))
    history.commit((rect, star))
    history.undo()      # -> (rect,)
    history.redo()      # -> (rect, star)

Snapshots are tuples of frozen :py:class:`~wrap_studio.api.layers.Layer`
records, so consecutive entries share every layer that did not change.
"""

import logging
from typing import Optional, Sequence

from attrs import define, field

from wrap_studio.api.layers import Layer
from wrap_studio.errors import ValidationError

logger = logging.getLogger(__name__)


@define(frozen=True)
class HistoryEntry:
    """
    One undoable snapshot of the layer stack.

    .. py:attribute:: index

        Monotonic sequence number, never reused within a session.
    """

    index: int = field()
    layers: tuple[Layer, ...] = field(converter=tuple)
    label: str = field(default="")


class History:
    """
    Linear undo/redo history.

    :param initial: layer stack of the first entry.
    :param limit: optional maximum number of entries; the oldest entries are
        evicted once it is exceeded. None keeps every entry.
    """

    def __init__(self, initial: Sequence[Layer] = (), limit: Optional[int] = None):
        if limit is not None and limit < 1:
            raise ValidationError("History limit must be at least 1 (got %r)" % limit)
        self._limit = limit
        self._sequence = 0
        self._entries: list[HistoryEntry] = [self._new_entry(initial, "initial")]
        self._cursor = 0

    def _new_entry(self, layers: Sequence[Layer], label: str) -> HistoryEntry:
        entry = HistoryEntry(self._sequence, tuple(layers), label)
        self._sequence += 1
        return entry

    def commit(self, layers: Sequence[Layer], label: str = "") -> list[HistoryEntry]:
        """
        Record a new state after the cursor.

        Entries after the cursor are discarded first, then the oldest entries
        when the limit is exceeded.

        :return: the entries dropped by this commit.
        """
        dropped = self._entries[self._cursor + 1 :]
        del self._entries[self._cursor + 1 :]
        self._entries.append(self._new_entry(layers, label))
        self._cursor = len(self._entries) - 1
        if self._limit is not None and len(self._entries) > self._limit:
            overflow = len(self._entries) - self._limit
            dropped.extend(self._entries[:overflow])
            del self._entries[:overflow]
            self._cursor -= overflow
        if dropped:
            logger.debug("History dropped %d entries" % len(dropped))
        return dropped

    def undo(self) -> Optional[tuple[Layer, ...]]:
        """Step back; return the restored state, or None at the first entry."""
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self.current.layers

    def redo(self) -> Optional[tuple[Layer, ...]]:
        """Step forward; return the restored state, or None at the last entry."""
        if not self.can_redo:
            return None
        self._cursor += 1
        return self.current.layers

    def reset(self, initial: Sequence[Layer] = ()) -> list[HistoryEntry]:
        """Reinitialize to a single entry; return every entry dropped."""
        dropped = self._entries
        self._entries = [self._new_entry(initial, "initial")]
        self._cursor = 0
        return dropped

    @property
    def current(self) -> HistoryEntry:
        return self._entries[self._cursor]

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def limit(self) -> Optional[int]:
        return self._limit

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return "%s(cursor=%d, entries=%d)" % (
            self.__class__.__name__,
            self._cursor,
            len(self._entries),
        )
