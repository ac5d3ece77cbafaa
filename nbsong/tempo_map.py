"""TempoMap: piecewise-constant tempo automation keyed by tick."""

from __future__ import annotations

from bisect import bisect_right, insort
from collections.abc import Iterator
from typing import Final

#: Sentinel key for the tempo in effect before tick 0.
INITIAL_TICK: Final[int] = -1

#: Tempo (ticks per second) used when nothing else applies.
DEFAULT_TEMPO: Final[float] = 10.0


class TempoMap:
    """
    Ordered mapping ``tick -> tempo`` in ticks per second.

    The initial tick (``INITIAL_TICK``) precedes tick 0 and carries the
    song's starting tempo. Lookups are floor lookups: the tempo in effect at
    a tick is the one stored at the greatest key not above it.

    A map becomes read-only after ``freeze()``; the returned copy is the one
    held by a built ``Song``.
    """

    def __init__(self, changes: dict[int, float] | None = None) -> None:
        self._ticks: list[int] = []
        self._tempos: dict[int, float] = {}
        self._frozen = False
        for tick, tempo in (changes or {}).items():
            self.set_tempo(tick, tempo)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check_mutable(self) -> None:
        if self._frozen:
            raise TypeError("TempoMap is frozen and can not be modified.")

    # ------------------------------------------------------------------
    # Mutation (builder phase only)
    # ------------------------------------------------------------------

    def set_tempo(self, tick: int, tempo: float) -> None:
        """
        Set the tempo used from ``tick`` on.

        A non-positive ``tempo`` resets the initial entry to ``DEFAULT_TEMPO``
        and removes any other entry.

        Raises:
            ValueError: If ``tick`` is below ``INITIAL_TICK``.
        """
        self._check_mutable()
        if tick < INITIAL_TICK:
            raise ValueError(f"Tempo change tick can not be lower than {INITIAL_TICK}.")
        if tempo <= 0:
            if tick == INITIAL_TICK:
                tempo = DEFAULT_TEMPO
            else:
                self.remove_tempo_change(tick)
                return

        if tick not in self._tempos:
            insort(self._ticks, tick)
        self._tempos[tick] = float(tempo)

    def remove_tempo_change(self, tick: int) -> None:
        """Remove the tempo change at ``tick`` if there is one."""
        self._check_mutable()
        if tick == INITIAL_TICK:
            raise ValueError("The initial tempo can not be removed, set it instead.")
        if self._tempos.pop(tick, None) is not None:
            self._ticks.remove(tick)

    def freeze(self) -> TempoMap:
        """Return a read-only copy of this map."""
        frozen = TempoMap()
        frozen._ticks = list(self._ticks)
        frozen._tempos = dict(self._tempos)
        frozen._frozen = True
        return frozen

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def tempo_at(self, tick: int) -> float:
        """Return the tempo in effect at ``tick``."""
        position = bisect_right(self._ticks, tick)
        if position == 0:
            return DEFAULT_TEMPO
        return self._tempos[self._ticks[position - 1]]

    def has_tempo_automation(self) -> bool:
        """True if the map holds anything besides an initial tempo."""
        return any(tick != INITIAL_TICK for tick in self._ticks)

    def changes(self) -> Iterator[tuple[int, float]]:
        """Yield ``(tick, tempo)`` pairs for every entry except the initial one."""
        for tick in self._ticks:
            if tick != INITIAL_TICK:
                yield tick, self._tempos[tick]

    def last_tick(self) -> int:
        """Highest key in the map, ``INITIAL_TICK`` if there is none."""
        return self._ticks[-1] if self._ticks else INITIAL_TICK

    def time_in_seconds_at(self, tick: int) -> float:
        """
        Integrate the tempo curve from tick 0 up to ``tick``.

        Each constant-tempo segment contributes ``length / tempo`` seconds.
        Keys before tick 0 are clamped to 0, so the initial entry governs the
        song's first segment unless an entry sits exactly at tick 0.
        """
        if tick <= 0:
            return 0.0

        seconds = 0.0
        position = 0
        tempo = DEFAULT_TEMPO
        for change_tick in self._ticks:
            start = max(change_tick, 0)
            if start >= tick:
                break
            seconds += (start - position) / tempo
            position = start
            tempo = self._tempos[change_tick]
        return seconds + (tick - position) / tempo

    def as_dict(self) -> dict[int, float]:
        return {tick: self._tempos[tick] for tick in self._ticks}

    def __getitem__(self, tick: int) -> float:
        return self._tempos[tick]

    def __contains__(self, tick: object) -> bool:
        return tick in self._tempos

    def __iter__(self) -> Iterator[int]:
        return iter(tuple(self._ticks))

    def __len__(self) -> int:
        return len(self._ticks)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TempoMap):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"TempoMap({self.as_dict()!r})"
