"""nbsong — codec and in-memory model for note block songs (.nbs)."""

__version__ = "0.1.0"

from nbsong.decoder import SongDecoder, decode, decode_bytes, load
from nbsong.encoder import SongEncoder, encode, encode_bytes, save
from nbsong.errors import SongCorruptedError
from nbsong.song import Song, SongBuilder
from nbsong.song_models import (
    TEMPO_CHANGER_INSTRUMENT_NAME,
    CustomInstrument,
    Instrument,
    Layer,
    NBSVersion,
    Note,
    SongMetadata,
)
from nbsong.tempo_map import DEFAULT_TEMPO, INITIAL_TICK, TempoMap
from nbsong.timeline import NO_TICK, TickTimeline
from nbsong.validation import ValidationPolicy

__all__ = [
    "DEFAULT_TEMPO",
    "INITIAL_TICK",
    "NO_TICK",
    "TEMPO_CHANGER_INSTRUMENT_NAME",
    "CustomInstrument",
    "Instrument",
    "Layer",
    "NBSVersion",
    "Note",
    "Song",
    "SongBuilder",
    "SongCorruptedError",
    "SongDecoder",
    "SongEncoder",
    "SongMetadata",
    "TempoMap",
    "TickTimeline",
    "ValidationPolicy",
    "decode",
    "decode_bytes",
    "encode",
    "encode_bytes",
    "load",
    "save",
]
