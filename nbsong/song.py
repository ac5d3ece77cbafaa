"""Song and SongBuilder: the immutable song document and how it is assembled."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from typing import Any

from nbsong.song_models import (
    MAXIMUM_PANNING,
    MAXIMUM_VOLUME,
    NEUTRAL_PANNING,
    CustomInstrument,
    Layer,
    Note,
    NotePlacement,
    SongMetadata,
)
from nbsong.tempo_map import INITIAL_TICK, TempoMap
from nbsong.timeline import TickTimeline
from nbsong.validation import ValidationPolicy, normalize_range


class Song:
    """
    A fully built, read-only song.

    Instances come from ``SongBuilder.build()`` (or the decoder, which uses a
    builder). Every derived value is computed once when the song is built.
    Notes are addressed by ``(tick, layer_index)``; nothing in the song holds
    a reference back to its owner.
    """

    def __init__(
        self,
        *,
        layers: tuple[Layer, ...],
        custom_instruments: tuple[CustomInstrument, ...],
        tempo_map: TempoMap,
        metadata: SongMetadata,
        timeline: TickTimeline,
        song_length: int,
        non_custom_instruments_count: int,
        is_stereo: bool,
    ) -> None:
        self._layers = layers
        self._custom_instruments = custom_instruments
        self._tempo_map = tempo_map if tempo_map.is_frozen else tempo_map.freeze()
        self._metadata = metadata
        self._timeline = timeline
        self._song_length = song_length
        self._non_custom_instruments_count = non_custom_instruments_count
        self._is_stereo = is_stereo
        self._length_in_seconds = self._tempo_map.time_in_seconds_at(song_length)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def layers(self) -> tuple[Layer, ...]:
        return self._layers

    @property
    def layers_count(self) -> int:
        return len(self._layers)

    def layer(self, index: int) -> Layer:
        return self._layers[index]

    @property
    def custom_instruments(self) -> tuple[CustomInstrument, ...]:
        return self._custom_instruments

    def custom_instrument(self, index: int) -> CustomInstrument:
        return self._custom_instruments[index]

    @property
    def metadata(self) -> SongMetadata:
        return self._metadata

    @property
    def tempo_map(self) -> TempoMap:
        return self._tempo_map

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def song_length(self) -> int:
        """Length in ticks: 1 + the last tick holding a note or tempo change."""
        return self._song_length

    @property
    def non_custom_instruments_count(self) -> int:
        """1 + the highest built-in instrument index used, 0 if none is used."""
        return self._non_custom_instruments_count

    @property
    def is_stereo(self) -> bool:
        return self._is_stereo

    @property
    def length_in_seconds(self) -> float:
        return self._length_in_seconds

    # ------------------------------------------------------------------
    # Timeline queries
    # ------------------------------------------------------------------

    def next_non_empty_tick(self, tick: int) -> int:
        """First tick after ``tick`` holding a note or tempo change, -1 if none."""
        return self._timeline.next_after(tick)

    def note_at(self, tick: int, layer_index: int) -> Note | None:
        return self._layers[layer_index].note_at(tick)

    def iter_notes(self) -> Iterator[NotePlacement]:
        """Yield every note ordered by tick, then by layer index."""
        for tick in self._timeline:
            for layer_index, layer in enumerate(self._layers):
                note = layer.note_at(tick)
                if note is not None:
                    yield NotePlacement(tick, layer_index, note)

    @property
    def notes_count(self) -> int:
        return sum(len(layer.notes) for layer in self._layers)

    def tempo_at(self, tick: int) -> float:
        """Tempo in ticks per second in effect at ``tick``."""
        return self._tempo_map.tempo_at(tick)

    def time_in_seconds_at(self, tick: int) -> float:
        """Seconds elapsed from the start of the song until ``tick``."""
        if tick <= 0 or self._song_length == 0:
            return 0.0
        if tick >= self._song_length:
            return self._length_in_seconds
        return self._tempo_map.time_in_seconds_at(tick)

    def __repr__(self) -> str:
        return (
            f"Song(title={self._metadata.title!r}, layers={len(self._layers)}, "
            f"length={self._song_length}, notes={self.notes_count})"
        )


@dataclass
class _LayerDraft:
    name: str = ""
    volume: int = MAXIMUM_VOLUME
    panning: int = NEUTRAL_PANNING
    locked: bool = False
    notes: dict[int, Note] = field(default_factory=dict)

    def freeze(self) -> Layer:
        return Layer(
            name=self.name,
            volume=self.volume,
            panning=self.panning,
            locked=self.locked,
            notes=self.notes,
        )


class SongBuilder:
    """
    Mutable accumulator producing an immutable ``Song``.

    Aggregates (length, instrument usage, stereo flag, occupied ticks) are
    kept up to date on every addition and removal, so ``build()`` only
    snapshots them.

    Bounded values passed as plain numbers go through ``policy``: STRICT
    rejects out-of-range values, CLAMPING clips them. Structural misuse
    (negative tick, shrinking the layer count) always raises.
    """

    def __init__(self, policy: ValidationPolicy = ValidationPolicy.STRICT) -> None:
        self.policy = policy
        self.metadata = SongMetadata()
        self._layers: list[_LayerDraft] = []
        self._custom_instruments: list[CustomInstrument] = []
        self._tempo_map = TempoMap()
        self._timeline = TickTimeline()
        self._declared_length = 0
        self._instrument_usage: Counter[int] = Counter()
        self._panned_notes = 0

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _draft(self, layer_index: int) -> _LayerDraft:
        if layer_index < 0 or layer_index >= len(self._layers):
            raise IndexError(f"Layer index {layer_index} is out of range.")
        return self._layers[layer_index]

    def _track_note(self, tick: int, note: Note) -> None:
        self._timeline.insert(tick)
        if not note.is_custom:
            self._instrument_usage[note.instrument] += 1
        if note.panning != NEUTRAL_PANNING:
            self._panned_notes += 1

    def _untrack_note(self, tick: int, note: Note) -> None:
        self._timeline.discard(tick)
        if not note.is_custom:
            self._instrument_usage[note.instrument] -= 1
            if self._instrument_usage[note.instrument] <= 0:
                del self._instrument_usage[note.instrument]
        if note.panning != NEUTRAL_PANNING:
            self._panned_notes -= 1

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    @property
    def layers_count(self) -> int:
        return len(self._layers)

    def set_layers_count(self, count: int) -> None:
        """
        Grow the song to ``count`` layers by appending empty ones.

        Raises:
            ValueError: If ``count`` is lower than the current layer count.
        """
        if count < len(self._layers):
            raise ValueError("Layers can not be removed by lowering the layer count.")
        while len(self._layers) < count:
            self._layers.append(_LayerDraft())

    def add_layer(
        self,
        name: str = "",
        volume: int = MAXIMUM_VOLUME,
        panning: int = NEUTRAL_PANNING,
        locked: bool = False,
    ) -> int:
        """Append a layer and return its index."""
        self._layers.append(_LayerDraft())
        index = len(self._layers) - 1
        self.set_layer(index, name=name, volume=volume, panning=panning, locked=locked)
        return index

    def set_layer(
        self,
        layer_index: int,
        *,
        name: str | None = None,
        volume: int | None = None,
        panning: int | None = None,
        locked: bool | None = None,
    ) -> None:
        """Update the display attributes of an existing layer."""
        draft = self._draft(layer_index)
        if name is not None:
            draft.name = name
        if volume is not None:
            draft.volume = normalize_range(volume, 0, MAXIMUM_VOLUME, "Layer volume", self.policy)
        if panning is not None:
            draft.panning = normalize_range(
                panning, -MAXIMUM_PANNING, MAXIMUM_PANNING, "Layer panning", self.policy
            )
        if locked is not None:
            draft.locked = bool(locked)

    def layer_name(self, layer_index: int) -> str:
        return self._draft(layer_index).name

    def is_layer_empty(self, layer_index: int) -> bool:
        return not self._draft(layer_index).notes

    def remove_layer(self, layer_index: int) -> None:
        """Remove a layer and its notes; later layers shift down by one."""
        draft = self._draft(layer_index)
        for tick, note in draft.notes.items():
            self._untrack_note(tick, note)
        del self._layers[layer_index]

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def set_note(self, tick: int, layer_index: int, note: Note) -> None:
        """
        Place ``note`` at ``(tick, layer_index)``, replacing any note there.

        Raises:
            ValueError: If ``tick`` is negative.
            IndexError: If the layer does not exist.
        """
        if tick < 0:
            raise ValueError("Tick can not be negative.")
        draft = self._draft(layer_index)
        previous = draft.notes.get(tick)
        if previous is not None:
            self._untrack_note(tick, previous)
        draft.notes[tick] = note
        self._track_note(tick, note)

    def add_note(self, tick: int, layer_index: int, **fields: Any) -> Note:
        """Create a note from plain values (normalized by ``policy``) and place it."""
        note = Note.create(policy=self.policy, **fields)
        self.set_note(tick, layer_index, note)
        return note

    def remove_note(self, tick: int, layer_index: int) -> Note | None:
        """Remove and return the note at ``(tick, layer_index)``, if any."""
        note = self._draft(layer_index).notes.pop(tick, None)
        if note is not None:
            self._untrack_note(tick, note)
        return note

    def iter_notes(self) -> Iterator[NotePlacement]:
        """Yield every placed note; safe to mutate the builder while iterating."""
        for layer_index, draft in enumerate(self._layers):
            for tick, note in sorted(draft.notes.items()):
                yield NotePlacement(tick, layer_index, note)

    # ------------------------------------------------------------------
    # Tempo
    # ------------------------------------------------------------------

    @property
    def tempo_map(self) -> TempoMap:
        return self._tempo_map

    def set_tempo_change(self, tick: int, tempo: float) -> None:
        """
        Use ``tempo`` ticks per second from ``tick`` on (``-1`` = initial tempo).

        Under CLAMPING a non-positive tempo removes the change (or resets the
        initial tempo to the default); under STRICT it is rejected.
        """
        if tempo <= 0 and self.policy is ValidationPolicy.STRICT:
            raise ValueError("Tempo must be positive.")
        had_change = tick in self._tempo_map
        self._tempo_map.set_tempo(tick, tempo)
        if tick == INITIAL_TICK:
            return
        has_change = tick in self._tempo_map
        if has_change and not had_change:
            self._timeline.insert(tick)
        elif had_change and not has_change:
            self._timeline.discard(tick)

    def remove_tempo_change(self, tick: int) -> None:
        if tick in self._tempo_map:
            self._tempo_map.remove_tempo_change(tick)
            self._timeline.discard(tick)

    # ------------------------------------------------------------------
    # Instruments and metadata
    # ------------------------------------------------------------------

    @property
    def custom_instruments(self) -> tuple[CustomInstrument, ...]:
        return tuple(self._custom_instruments)

    def add_custom_instrument(self, instrument: CustomInstrument) -> int:
        """Append a custom instrument and return its index."""
        self._custom_instruments.append(instrument)
        return len(self._custom_instruments) - 1

    def set_metadata(self, **changes: Any) -> None:
        self.metadata = replace(self.metadata, **changes)

    # ------------------------------------------------------------------
    # Length and aggregates
    # ------------------------------------------------------------------

    def set_length(self, length: int) -> None:
        """
        Declare the song length in ticks. Later notes may still extend it.

        Raises:
            ValueError: If notes or tempo changes already lie at or beyond ``length``.
        """
        if self._timeline.last() >= length:
            raise ValueError("Specified song length would not contain all notes or tempo changes.")
        self._declared_length = max(0, int(length))

    @property
    def song_length(self) -> int:
        return max(self._declared_length, self._timeline.last() + 1)

    @property
    def non_custom_instruments_count(self) -> int:
        return max(self._instrument_usage, default=-1) + 1

    @property
    def is_stereo(self) -> bool:
        return self._panned_notes > 0 or any(
            draft.panning != NEUTRAL_PANNING for draft in self._layers
        )

    def next_non_empty_tick(self, tick: int) -> int:
        return self._timeline.next_after(tick)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self) -> Song:
        """Snapshot the accumulated state into an immutable ``Song``."""
        return Song(
            layers=tuple(draft.freeze() for draft in self._layers),
            custom_instruments=tuple(self._custom_instruments),
            tempo_map=self._tempo_map.freeze(),
            metadata=self.metadata,
            timeline=TickTimeline(self._timeline),
            song_length=self.song_length,
            non_custom_instruments_count=self.non_custom_instruments_count,
            is_stereo=self.is_stereo,
        )
