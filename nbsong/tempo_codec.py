"""
Tempo automation on the wire.

The format stores a single starting tempo. Later tempo changes travel as
notes played by a custom instrument named ``TEMPO_CHANGER_INSTRUMENT_NAME``
on a layer of the same name, the tempo encoded in the note's fine pitch
(``pitch = tempo * 15``). This module is the only place that knows about
that convention: the decoder calls ``extract_tempo_changes`` on its builder,
the encoder calls ``compress_tempo_changes`` on the song it writes.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

from nbsong.song import Song, SongBuilder
from nbsong.song_models import (
    TEMPO_CHANGER_INSTRUMENT_NAME,
    CustomInstrument,
    Layer,
    Note,
)

logger = logging.getLogger(__name__)

#: Fine-pitch units per tick-per-second of tempo.
TEMPO_PITCH_SCALE: Final[int] = 15


def find_tempo_changer_index(custom_instruments: Sequence[CustomInstrument]) -> int | None:
    """Index of the first custom instrument named as the tempo marker, if any."""
    for index, instrument in enumerate(custom_instruments):
        if instrument.is_tempo_changer:
            return index
    return None


def pitch_to_tempo(pitch: int) -> float:
    return abs(pitch) / float(TEMPO_PITCH_SCALE)


def tempo_to_pitch(tempo: float) -> int:
    """
    Marker pitch for ``tempo``.

    Raises:
        ValueError: If a positive tempo rounds to pitch 0, which reads back as no change.
    """
    pitch = int(round(tempo * TEMPO_PITCH_SCALE))
    if pitch == 0 and tempo > 0:
        raise ValueError(f"tempo change={tempo} is too slow for the wire format.")
    return pitch


# ── Decoding ─────────────────────────────────────────────────────────────────

def extract_tempo_changes(builder: SongBuilder) -> int:
    """
    Turn tempo-marker notes in ``builder`` into tempo changes.

    Every note on the tempo-marker custom instrument is removed and replaced
    by a tempo change at its tick. Layers emptied this way are dropped when
    they carry the marker name, since they only existed to hold those notes.

    Returns:
        The number of tempo changes extracted.
    """
    instrument_index = find_tempo_changer_index(builder.custom_instruments)
    if instrument_index is None:
        return 0

    touched_layers: set[int] = set()
    extracted = 0
    for tick, layer_index, note in list(builder.iter_notes()):
        if not note.is_custom or note.instrument != instrument_index:
            continue
        builder.remove_note(tick, layer_index)
        builder.set_tempo_change(tick, pitch_to_tempo(note.pitch))
        touched_layers.add(layer_index)
        extracted += 1

    for layer_index in sorted(touched_layers, reverse=True):
        if (
            builder.is_layer_empty(layer_index)
            and builder.layer_name(layer_index) == TEMPO_CHANGER_INSTRUMENT_NAME
        ):
            builder.remove_layer(layer_index)
            logger.debug("Dropped synthetic tempo layer %d", layer_index)

    logger.debug("Extracted %d tempo change(s) from custom instrument %d", extracted, instrument_index)
    return extracted


# ── Encoding ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TempoTrack:
    """
    Synthetic wire-only data carrying a song's tempo changes.

    Attributes:
        instrument_index:   Custom-instrument index of the tempo marker.
        custom_instruments: The song's custom instruments, with the marker
                            appended when the song did not declare one.
        layer:              Extra layer holding one marker note per change.
    """

    instrument_index: int
    custom_instruments: tuple[CustomInstrument, ...]
    layer: Layer


def compress_tempo_changes(song: Song) -> TempoTrack | None:
    """
    Build the synthetic tempo layer for ``song``.

    Returns:
        ``None`` when the song has nothing but an initial tempo.
    """
    if not song.tempo_map.has_tempo_automation():
        return None

    custom_instruments = song.custom_instruments
    instrument_index = find_tempo_changer_index(custom_instruments)
    if instrument_index is None:
        custom_instruments = custom_instruments + (
            CustomInstrument(name=TEMPO_CHANGER_INSTRUMENT_NAME),
        )
        instrument_index = len(custom_instruments) - 1

    notes = {
        tick: Note(instrument=instrument_index, is_custom=True, pitch=tempo_to_pitch(tempo))
        for tick, tempo in song.tempo_map.changes()
    }
    return TempoTrack(
        instrument_index=instrument_index,
        custom_instruments=custom_instruments,
        layer=Layer(name=TEMPO_CHANGER_INSTRUMENT_NAME, notes=notes),
    )
