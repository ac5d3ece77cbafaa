"""Value types that make up a song: notes, layers, instruments and metadata."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Final, NamedTuple

from nbsong.validation import ValidationPolicy, normalize_range

# ── Value ranges ─────────────────────────────────────────────────────────────
MINIMUM_KEY: Final[int] = 0   # A0
MAXIMUM_KEY: Final[int] = 87  # C8
DEFAULT_KEY: Final[int] = 45  # F#4, the format's "neutral" key
MAXIMUM_VOLUME: Final[int] = 100
MAXIMUM_PANNING: Final[int] = 100
NEUTRAL_PANNING: Final[int] = 0

#: Custom instrument name that marks synthetic tempo-change notes on the wire.
TEMPO_CHANGER_INSTRUMENT_NAME: Final[str] = "Tempo Changer"


class NBSVersion(IntEnum):
    """
    Binary revisions of the song format. Each adds fields, none removes any.

    V1: base layout.
    V2: adds layer panning.
    V3: adds the declared song length to the header.
    V4: adds loop metadata, layer lock, note volume/panning/pitch
         (tempo automation rides on a synthetic custom instrument).
    V5: same structure as V4.
    """

    V1 = 1
    V2 = 2
    V3 = 3
    V4 = 4
    V5 = 5
    LATEST = 5

    @property
    def has_layer_panning(self) -> bool:
        return self >= NBSVersion.V2

    @property
    def has_song_length(self) -> bool:
        return self >= NBSVersion.V3

    @property
    def has_note_details(self) -> bool:
        """Note volume/panning/pitch, layer lock and loop metadata."""
        return self >= NBSVersion.V4


class Instrument(IntEnum):
    """Built-in instrument palette shared by every song."""

    HARP = 0
    PIANO = 0
    BASS = 1
    BASS_DRUM = 2
    SNARE_DRUM = 3
    CLICK = 4
    GUITAR = 5
    FLUTE = 6
    BELL = 7
    CHIME = 8
    XYLOPHONE = 9
    IRON_XYLOPHONE = 10
    COW_BELL = 11
    DIDGERIDOO = 12
    BIT = 13
    BANJO = 14
    PLING = 15


def _check_instrument(instrument: int, policy: ValidationPolicy) -> int:
    if instrument >= 0:
        return int(instrument)
    if policy is ValidationPolicy.STRICT:
        raise ValueError("Instrument index can not be negative.")
    return 0


@dataclass(frozen=True)
class Note:
    """
    A single note block.

    Attributes:
        instrument: Index into the built-in palette, or into the song's
                    custom instruments when ``is_custom`` is set.
        is_custom:  Selects which of the two independent tables is indexed.
        key:        0 (A0) .. 87 (C8).
        pitch:      Fine pitch; 100 units = one semitone.
        panning:    -100 (left) .. 100 (right), 0 = center.
        volume:     0 .. 100.
    """

    instrument: int = 0
    is_custom: bool = False
    key: int = DEFAULT_KEY
    pitch: int = 0
    panning: int = NEUTRAL_PANNING
    volume: int = MAXIMUM_VOLUME

    def __post_init__(self) -> None:
        _check_instrument(self.instrument, ValidationPolicy.STRICT)
        normalize_range(self.key, MINIMUM_KEY, MAXIMUM_KEY, "Key")
        normalize_range(self.panning, -MAXIMUM_PANNING, MAXIMUM_PANNING, "Panning")
        normalize_range(self.volume, 0, MAXIMUM_VOLUME, "Volume")

    @classmethod
    def create(
        cls,
        instrument: int = 0,
        is_custom: bool = False,
        key: int = DEFAULT_KEY,
        pitch: int = 0,
        panning: int = NEUTRAL_PANNING,
        volume: int = MAXIMUM_VOLUME,
        policy: ValidationPolicy = ValidationPolicy.STRICT,
    ) -> Note:
        """Build a note, normalizing every bounded field through ``policy``."""
        return cls(
            instrument=_check_instrument(instrument, policy),
            is_custom=bool(is_custom),
            key=normalize_range(key, MINIMUM_KEY, MAXIMUM_KEY, "Key", policy),
            pitch=int(pitch),
            panning=normalize_range(panning, -MAXIMUM_PANNING, MAXIMUM_PANNING, "Panning", policy),
            volume=normalize_range(volume, 0, MAXIMUM_VOLUME, "Volume", policy),
        )


@dataclass(frozen=True)
class Layer:
    """A track of the song. Holds at most one note per tick."""

    name: str = ""
    volume: int = MAXIMUM_VOLUME
    panning: int = NEUTRAL_PANNING
    locked: bool = False
    notes: Mapping[int, Note] = field(default_factory=dict)

    def __post_init__(self) -> None:
        normalize_range(self.volume, 0, MAXIMUM_VOLUME, "Layer volume")
        normalize_range(self.panning, -MAXIMUM_PANNING, MAXIMUM_PANNING, "Layer panning")
        if not isinstance(self.notes, MappingProxyType):
            object.__setattr__(self, "notes", MappingProxyType(dict(self.notes)))

    @property
    def is_empty(self) -> bool:
        return not self.notes

    def note_at(self, tick: int) -> Note | None:
        return self.notes.get(tick)


@dataclass(frozen=True)
class CustomInstrument:
    """A song-local instrument backed by a sample file."""

    name: str = ""
    file_name: str = ""
    key: int = DEFAULT_KEY
    press_key: bool = False

    def __post_init__(self) -> None:
        normalize_range(self.key, MINIMUM_KEY, MAXIMUM_KEY, "Custom instrument key")

    @classmethod
    def create(
        cls,
        name: str = "",
        file_name: str = "",
        key: int = DEFAULT_KEY,
        press_key: bool = False,
        policy: ValidationPolicy = ValidationPolicy.STRICT,
    ) -> CustomInstrument:
        return cls(
            name=name,
            file_name=file_name,
            key=normalize_range(key, MINIMUM_KEY, MAXIMUM_KEY, "Custom instrument key", policy),
            press_key=bool(press_key),
        )

    @property
    def is_tempo_changer(self) -> bool:
        return self.name == TEMPO_CHANGER_INSTRUMENT_NAME


@dataclass(frozen=True)
class SongMetadata:
    """Descriptive and bookkeeping fields. Carried through the codec verbatim."""

    title: str = ""
    author: str = ""
    original_author: str = ""
    description: str = ""
    auto_save: bool = False
    auto_save_duration: int = 10  # minutes
    time_signature: int = 4       # x/4ths
    minutes_spent: int = 0
    left_clicks: int = 0
    right_clicks: int = 0
    notes_added: int = 0
    notes_removed: int = 0
    original_midi_file_name: str = ""
    loop: bool = False
    loop_max_count: int = 0
    loop_start_tick: int = 0


class NotePlacement(NamedTuple):
    """Where a note sits in a song, resolved through the owning ``Song``."""

    tick: int
    layer_index: int
    note: Note
