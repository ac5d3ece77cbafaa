"""SongDecoder: reads any revision of the binary song format into a Song."""

from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass
from os import PathLike
from typing import BinaryIO, Final

from nbsong.binary_io import BinaryReader
from nbsong.errors import SongCorruptedError
from nbsong.song import Song, SongBuilder
from nbsong.song_models import CustomInstrument, NBSVersion, Note
from nbsong.tempo_codec import extract_tempo_changes
from nbsong.tempo_map import INITIAL_TICK
from nbsong.timeline import MAX_TICK
from nbsong.validation import ValidationPolicy

logger = logging.getLogger(__name__)

#: First custom instrument index assumed for files without a revision byte.
LEGACY_FIRST_CUSTOM_INSTRUMENT_INDEX: Final[int] = 10

#: Highest layer index a uint16 layer count can describe.
MAX_LAYER_INDEX: Final[int] = 0xFFFF - 1

# Failures that mean "the bytes are not a valid song", as opposed to OSError.
_CORRUPTION_ERRORS: Final = (EOFError, ValueError, IndexError, OverflowError, struct.error)


@dataclass(frozen=True)
class SongHeader:
    """
    What the decoder learned from the first bytes of a song.

    Attributes:
        revision:                     0 for pre-revision files, else 1..5.
        first_custom_instrument_index: Instrument bytes at or above this value
                                      refer to custom instruments.
        declared_length:              Song length from the header, or None.
        layers_count:                 Layer count declared before the notes.
    """

    revision: int
    first_custom_instrument_index: int
    declared_length: int | None
    layers_count: int

    @property
    def has_layer_panning(self) -> bool:
        return self.revision >= NBSVersion.V2

    @property
    def has_note_details(self) -> bool:
        return self.revision >= NBSVersion.V4


class SongDecoder:
    """
    Decodes one song from a binary stream.

    Sections are consumed strictly in file order: header, layer count,
    metadata, note stream, layer attributes, custom instruments. The tempo
    marker notes are then folded back into tempo changes. Any structural
    failure is reported as a single ``SongCorruptedError``; the stream is
    left to the caller to close.

    Usage:

        decoder = SongDecoder(stream)
        song = decoder.decode()
        print(decoder.header.revision)
    """

    def __init__(self, stream: BinaryIO) -> None:
        self.reader = BinaryReader(stream)
        self.header: SongHeader | None = None

    # ------------------------------------------------------------------
    # Private helpers (one per section)
    # ------------------------------------------------------------------

    def _read_header(self, builder: SongBuilder) -> SongHeader:
        legacy_length = self.reader.read_ushort()
        if legacy_length != 0:
            builder.set_length(legacy_length)
            revision = 0
            first_custom_index = LEGACY_FIRST_CUSTOM_INSTRUMENT_INDEX
            declared_length: int | None = legacy_length
        else:
            revision = self.reader.read_byte()
            first_custom_index = self.reader.read_byte()
            if revision > NBSVersion.LATEST:
                raise ValueError(f"Unsupported song revision {revision}.")
            declared_length = None
            if revision >= NBSVersion.V3:
                declared_length = self.reader.read_ushort()
                builder.set_length(declared_length)

        layers_count = self.reader.read_ushort()
        builder.set_layers_count(layers_count)

        logger.debug(
            "Header: revision=%d first_custom=%d length=%s layers=%d",
            revision, first_custom_index, declared_length, layers_count,
        )
        return SongHeader(revision, first_custom_index, declared_length, layers_count)

    def _read_metadata(self, builder: SongBuilder, header: SongHeader) -> None:
        read = self.reader
        title = read.read_string()
        author = read.read_string()
        original_author = read.read_string()
        description = read.read_string()
        builder.set_tempo_change(INITIAL_TICK, read.read_ushort() / 100.0)

        fields = dict(
            title=title,
            author=author,
            original_author=original_author,
            description=description,
            auto_save=read.read_bool(),
            auto_save_duration=read.read_byte(),
            time_signature=read.read_byte(),
            minutes_spent=read.read_int(),
            left_clicks=read.read_int(),
            right_clicks=read.read_int(),
            notes_added=read.read_int(),
            notes_removed=read.read_int(),
            original_midi_file_name=read.read_string(),
        )
        if header.has_note_details:
            fields.update(
                loop=read.read_bool(),
                loop_max_count=read.read_byte(),
                loop_start_tick=read.read_ushort(),
            )
        builder.set_metadata(**fields)

    def _read_note(self, header: SongHeader, policy: ValidationPolicy) -> Note:
        instrument = self.reader.read_byte()
        is_custom = instrument >= header.first_custom_instrument_index
        if is_custom:
            instrument -= header.first_custom_instrument_index
        key = self.reader.read_byte()

        if not header.has_note_details:
            return Note.create(instrument=instrument, is_custom=is_custom, key=key, policy=policy)

        volume = self.reader.read_byte()
        panning = 100 - self.reader.read_byte()  # 0 on disk is fully right
        pitch = self.reader.read_short()
        return Note.create(
            instrument=instrument,
            is_custom=is_custom,
            key=key,
            pitch=pitch,
            panning=panning,
            volume=volume,
            policy=policy,
        )

    def _read_notes(self, builder: SongBuilder, header: SongHeader) -> None:
        tick = -1
        while True:
            jump_ticks = self.reader.read_short()
            if jump_ticks == 0:
                break
            tick += jump_ticks
            if tick > MAX_TICK:
                raise OverflowError(f"Tick {tick} overflows the note stream.")

            layer_index = -1
            while True:
                jump_layers = self.reader.read_short()
                if jump_layers == 0:
                    break
                layer_index += jump_layers
                if layer_index > MAX_LAYER_INDEX:
                    raise OverflowError(f"Layer {layer_index} overflows the note stream at tick {tick}.")

                note = self._read_note(header, builder.policy)
                if layer_index >= builder.layers_count:
                    logger.debug(
                        "Note at tick %d references layer %d beyond the %d declared; extending",
                        tick, layer_index, builder.layers_count,
                    )
                    builder.set_layers_count(layer_index + 1)
                builder.set_note(tick, layer_index, note)

    def _read_layers(self, builder: SongBuilder, header: SongHeader) -> None:
        # Only the declared layers have attributes; overflow layers keep defaults.
        for layer_index in range(header.layers_count):
            name = self.reader.read_string()
            locked = self.reader.read_bool() if header.has_note_details else False
            volume = self.reader.read_byte()
            panning = 0
            if header.has_layer_panning:
                panning = 100 - self.reader.read_byte()
            builder.set_layer(layer_index, name=name, volume=volume, panning=panning, locked=locked)

    def _read_custom_instruments(self, builder: SongBuilder) -> None:
        count = self.reader.read_byte()
        for _ in range(count):
            builder.add_custom_instrument(
                CustomInstrument.create(
                    name=self.reader.read_string(),
                    file_name=self.reader.read_string(),
                    key=self.reader.read_byte(),
                    press_key=self.reader.read_bool(),
                    policy=builder.policy,
                )
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def decode(self) -> Song:
        """
        Read a complete song from the stream.

        Raises:
            SongCorruptedError: If the data is truncated or malformed.
            OSError: If reading from the underlying stream fails.
        """
        builder = SongBuilder(policy=ValidationPolicy.CLAMPING)
        try:
            header = self._read_header(builder)
            self._read_metadata(builder, header)
            self._read_notes(builder, header)
            self._read_layers(builder, header)
            self._read_custom_instruments(builder)
            extract_tempo_changes(builder)
        except _CORRUPTION_ERRORS as exc:
            raise SongCorruptedError(str(exc)) from exc

        self.header = header
        return builder.build()


def decode(stream: BinaryIO) -> Song:
    """Decode a song from a caller-owned binary stream."""
    return SongDecoder(stream).decode()


def decode_bytes(data: bytes) -> Song:
    """Decode a song held entirely in memory."""
    return decode(io.BytesIO(data))


def load(path: str | PathLike[str]) -> Song:
    """
    Read a song file from disk. The file is closed whatever the outcome.

    Raises:
        SongCorruptedError: If the file is not a valid song.
        OSError: If the file cannot be opened or read.
    """
    with open(path, "rb") as fh:
        return decode(fh)
