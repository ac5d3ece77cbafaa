"""SongEncoder: writes a Song in a chosen revision of the binary format."""

from __future__ import annotations

import io
import logging
from os import PathLike
from typing import BinaryIO

from nbsong.binary_io import BinaryWriter
from nbsong.song import Song
from nbsong.song_models import CustomInstrument, Layer, NBSVersion, Note
from nbsong.tempo_codec import TempoTrack, compress_tempo_changes
from nbsong.tempo_map import INITIAL_TICK
from nbsong.timeline import NO_TICK

logger = logging.getLogger(__name__)


def round_instrument_count(count: int) -> int:
    """
    Round the built-in instrument count up to a palette size some reader expects.

    Third-party readers hardcode where custom instruments start: 5 (oldest
    palette), 10, and 16 (current palette). Counts above 16 are kept.
    """
    if count <= 5:
        return 5
    if count <= 10:
        return 10
    return max(16, count)


def _resolve_revision(revision: int | NBSVersion) -> NBSVersion:
    try:
        return NBSVersion(int(revision))
    except ValueError:
        raise ValueError(
            f"Unsupported revision {revision!r}; use {int(NBSVersion.V1)}..{int(NBSVersion.LATEST)}."
        ) from None


class SongEncoder:
    """
    Encodes songs for one target revision.

    Fields the revision cannot express are dropped. For revision 4 and later,
    tempo changes after the start are written as a synthetic layer of
    tempo-marker notes (see ``nbsong.tempo_codec``); older revisions keep
    only the starting tempo.

    Output goes straight to the sink as it is produced, so a failing sink can
    leave partial data behind for the caller to discard.
    """

    def __init__(self, revision: int | NBSVersion = NBSVersion.LATEST) -> None:
        self.revision = _resolve_revision(revision)

    # ------------------------------------------------------------------
    # Private helpers (one per section)
    # ------------------------------------------------------------------

    def _write_header(
        self, out: BinaryWriter, song: Song, instruments_count: int, layers: list[Layer]
    ) -> None:
        out.write_ushort(0, "legacy length")
        out.write_byte(int(self.revision), "revision")
        out.write_byte(instruments_count, "first custom instrument index")
        if self.revision.has_song_length:
            out.write_ushort(song.song_length, "song length")
        out.write_ushort(len(layers), "layer count")

    def _initial_tempo(self, song: Song) -> float:
        if self.revision.has_note_details:
            return song.tempo_at(INITIAL_TICK)
        return song.tempo_at(0)

    def _write_metadata(self, out: BinaryWriter, song: Song) -> None:
        metadata = song.metadata
        out.write_string(metadata.title)
        out.write_string(metadata.author)
        out.write_string(metadata.original_author)
        out.write_string(metadata.description)
        tempo = self._initial_tempo(song)
        encoded_tempo = round(tempo * 100)
        if encoded_tempo == 0:
            raise ValueError(f"tempo={tempo} is too slow for the wire format.")
        out.write_ushort(encoded_tempo, "tempo")
        out.write_bool(metadata.auto_save)
        out.write_byte(metadata.auto_save_duration, "auto save duration")
        out.write_byte(metadata.time_signature, "time signature")
        out.write_int(metadata.minutes_spent, "minutes spent")
        out.write_int(metadata.left_clicks, "left clicks")
        out.write_int(metadata.right_clicks, "right clicks")
        out.write_int(metadata.notes_added, "notes added")
        out.write_int(metadata.notes_removed, "notes removed")
        out.write_string(metadata.original_midi_file_name)
        if self.revision.has_note_details:
            out.write_bool(metadata.loop)
            out.write_byte(metadata.loop_max_count, "loop max count")
            out.write_ushort(metadata.loop_start_tick, "loop start tick")

    def _write_note(self, out: BinaryWriter, note: Note, instruments_count: int) -> None:
        instrument = note.instrument + instruments_count if note.is_custom else note.instrument
        out.write_byte(instrument, "instrument")
        out.write_byte(note.key, "key")
        if self.revision.has_note_details:
            out.write_byte(note.volume, "volume")
            out.write_byte(100 - note.panning, "panning")  # 0 on disk is fully right
            out.write_short(note.pitch, "pitch")

    def _write_notes(
        self, out: BinaryWriter, song: Song, layers: list[Layer], instruments_count: int
    ) -> None:
        last_tick = -1
        tick = song.next_non_empty_tick(last_tick)
        while tick != NO_TICK:
            occupied = [
                (layer_index, layer.notes[tick])
                for layer_index, layer in enumerate(layers)
                if tick in layer.notes
            ]
            # A tick holding only a dropped tempo change has nothing to write.
            if occupied:
                out.write_short(tick - last_tick, "tick jump")
                last_layer_index = -1
                for layer_index, note in occupied:
                    out.write_short(layer_index - last_layer_index, "layer jump")
                    self._write_note(out, note, instruments_count)
                    last_layer_index = layer_index
                out.write_short(0)
                last_tick = tick
            tick = song.next_non_empty_tick(tick)
        out.write_short(0)

    def _write_layers(self, out: BinaryWriter, layers: list[Layer]) -> None:
        for layer in layers:
            out.write_string(layer.name)
            if self.revision.has_note_details:
                out.write_bool(layer.locked)
            out.write_byte(layer.volume, "layer volume")
            if self.revision.has_layer_panning:
                out.write_byte(100 - layer.panning, "layer panning")

    def _write_custom_instruments(
        self, out: BinaryWriter, custom_instruments: tuple[CustomInstrument, ...]
    ) -> None:
        out.write_byte(len(custom_instruments), "custom instrument count")
        for instrument in custom_instruments:
            out.write_string(instrument.name)
            out.write_string(instrument.file_name)
            out.write_byte(instrument.key, "custom instrument key")
            out.write_bool(instrument.press_key)

    def _tempo_track(self, song: Song) -> TempoTrack | None:
        if not song.tempo_map.has_tempo_automation():
            return None
        if not self.revision.has_note_details:
            logger.debug(
                "Revision %d cannot store tempo changes; keeping only the starting tempo",
                self.revision,
            )
            return None
        return compress_tempo_changes(song)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encode(self, song: Song, sink: BinaryIO) -> None:
        """
        Write ``song`` to ``sink``. The sink is not closed.

        Raises:
            ValueError: If a value does not fit its field in the binary format.
            OSError: If writing to the sink fails.
        """
        out = BinaryWriter(sink)
        instruments_count = round_instrument_count(song.non_custom_instruments_count)

        layers = list(song.layers)
        custom_instruments = song.custom_instruments
        tempo_track = self._tempo_track(song)
        if tempo_track is not None:
            layers.append(tempo_track.layer)
            custom_instruments = tempo_track.custom_instruments

        logger.debug(
            "Encoding revision %d: %d layer(s), first custom instrument %d",
            self.revision, len(layers), instruments_count,
        )
        self._write_header(out, song, instruments_count, layers)
        self._write_metadata(out, song)
        self._write_notes(out, song, layers, instruments_count)
        self._write_layers(out, layers)
        self._write_custom_instruments(out, custom_instruments)


def encode(song: Song, revision: int | NBSVersion, sink: BinaryIO) -> None:
    """Encode ``song`` for ``revision`` into a caller-owned binary sink."""
    SongEncoder(revision).encode(song, sink)


def encode_bytes(song: Song, revision: int | NBSVersion = NBSVersion.LATEST) -> bytes:
    buffer = io.BytesIO()
    encode(song, revision, buffer)
    return buffer.getvalue()


def save(song: Song, path: str | PathLike[str], revision: int | NBSVersion = NBSVersion.LATEST) -> None:
    """
    Write ``song`` to a file. The file is closed whatever the outcome.

    Raises:
        ValueError: If the song cannot be represented in ``revision``.
        OSError: If the file cannot be written.
    """
    with open(path, "wb") as fh:
        encode(song, revision, fh)
