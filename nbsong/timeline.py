"""TickTimeline: ordered index of ticks that hold at least one event."""

from __future__ import annotations

from bisect import bisect_right, insort
from collections.abc import Iterable, Iterator

#: Returned by ``next_after`` when no later tick exists.
NO_TICK = -1

#: Largest tick the in-memory model accepts (signed 63-bit range).
MAX_TICK = 2**63 - 1


class TickTimeline:
    """
    Sorted set of non-negative ticks with "next occupied tick" queries.

    Each tick is reference counted: a tick holding two notes stays in the
    index until both are discarded. Iteration and ``next_after`` only ever
    see each tick once.
    """

    def __init__(self, ticks: Iterable[int] = ()) -> None:
        self._ticks: list[int] = []
        self._counts: dict[int, int] = {}
        for tick in ticks:
            self.insert(tick)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_tick(tick: int) -> None:
        if tick < 0:
            raise ValueError("Tick can not be negative.")
        if tick > MAX_TICK:
            raise ValueError(f"Tick {tick} exceeds the supported range.")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def insert(self, tick: int) -> None:
        """Record one more event at ``tick``."""
        self._check_tick(tick)
        count = self._counts.get(tick, 0)
        if count == 0:
            insort(self._ticks, tick)
        self._counts[tick] = count + 1

    def discard(self, tick: int) -> None:
        """Forget one event at ``tick``; the tick leaves the index with its last event."""
        count = self._counts.get(tick, 0)
        if count == 0:
            return
        if count > 1:
            self._counts[tick] = count - 1
            return
        del self._counts[tick]
        self._ticks.pop(bisect_right(self._ticks, tick) - 1)

    def next_after(self, tick: int) -> int:
        """
        Return the smallest occupied tick strictly greater than ``tick``.

        Returns:
            The tick, or ``NO_TICK`` if nothing follows.
        """
        position = bisect_right(self._ticks, tick)
        if position == len(self._ticks):
            return NO_TICK
        return self._ticks[position]

    def last(self) -> int:
        """Return the highest occupied tick, or ``NO_TICK`` for an empty index."""
        return self._ticks[-1] if self._ticks else NO_TICK

    def __contains__(self, tick: object) -> bool:
        return tick in self._counts

    def __iter__(self) -> Iterator[int]:
        return iter(tuple(self._ticks))

    def __len__(self) -> int:
        return len(self._ticks)

    def __repr__(self) -> str:
        return f"TickTimeline({self._ticks!r})"
