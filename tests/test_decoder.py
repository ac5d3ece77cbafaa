"""Unit tests for SongDecoder, fed hand-assembled byte streams."""

import io
import struct

import pytest

from nbsong.decoder import SongDecoder, decode_bytes, load
from nbsong.encoder import encode_bytes
from nbsong.errors import SongCorruptedError
from nbsong.song import SongBuilder
from nbsong.song_models import TEMPO_CHANGER_INSTRUMENT_NAME, NBSVersion, Note
from nbsong.tempo_map import INITIAL_TICK


def _string(text: str) -> bytes:
    data = text.encode("utf-8")
    return struct.pack("<i", len(data)) + data


def _metadata(tempo: int = 1000, loop: bool = False, title: str = "") -> bytes:
    data = _string(title) + _string("") + _string("") + _string("")
    data += struct.pack("<HBBB", tempo, 0, 10, 4)
    data += struct.pack("<5i", 0, 0, 0, 0, 0)
    data += _string("")
    if loop:
        data += struct.pack("<BBH", 0, 0, 0)
    return data


def _v5_header(length: int, layers: int, first_custom: int = 16) -> bytes:
    return struct.pack("<HBBHH", 0, 5, first_custom, length, layers)


def _v5_note(instrument: int, key: int = 45, volume: int = 100,
             disk_panning: int = 100, pitch: int = 0) -> bytes:
    return struct.pack("<BBBBh", instrument, key, volume, disk_panning, pitch)


def _v5_layer(name: str, volume: int = 100, disk_panning: int = 100) -> bytes:
    return _string(name) + struct.pack("<BBB", 0, volume, disk_panning)


# Unnamed layer: empty name, lock, volume, panning.
_V5_EMPTY_LAYER_SIZE = 4 + 3


def _legacy_song() -> bytes:
    data = struct.pack("<HH", 5, 1)                 # legacy length, layer count
    data += _metadata()
    data += struct.pack("<hh", 3, 1)                # tick 2, layer 0
    data += struct.pack("<BB", 11, 40)              # custom instrument 1, key 40
    data += struct.pack("<hh", 0, 0)
    data += _string("Melody") + struct.pack("<B", 80)
    data += struct.pack("<B", 2)
    data += _string("a") + _string("a.ogg") + struct.pack("<BB", 45, 0)
    data += _string("b") + _string("") + struct.pack("<BB", 45, 1)
    return data


# ── Header variants ──────────────────────────────────────────────────────────

def test_legacy_file_uses_first_custom_index_ten() -> None:
    decoder = SongDecoder(io.BytesIO(_legacy_song()))
    song = decoder.decode()
    assert decoder.header is not None
    assert decoder.header.revision == 0
    assert decoder.header.first_custom_instrument_index == 10
    assert song.note_at(2, 0) == Note(instrument=1, is_custom=True, key=40)
    assert song.song_length == 5
    assert song.layer(0).name == "Melody"
    assert song.layer(0).volume == 80
    assert song.custom_instrument(1).press_key


def test_revision_five_note_details() -> None:
    data = _v5_header(length=0, layers=1)
    data += _metadata(tempo=1250, loop=True, title="Intro")
    data += struct.pack("<hh", 1, 1) + _v5_note(2, key=50, volume=60, disk_panning=130, pitch=-120)
    data += struct.pack("<hh", 0, 0)
    data += _v5_layer("Bass", volume=70, disk_panning=75)
    data += struct.pack("<B", 0)

    song = decode_bytes(data)
    assert song.metadata.title == "Intro"
    assert song.tempo_at(INITIAL_TICK) == 12.5
    assert song.note_at(0, 0) == Note(instrument=2, key=50, volume=60, panning=-30, pitch=-120)
    assert song.layer(0).panning == 25
    assert song.non_custom_instruments_count == 3
    assert song.is_stereo


def test_notes_beyond_declared_layers_extend_the_song() -> None:
    data = _v5_header(length=0, layers=1)
    data += _metadata(loop=True)
    data += struct.pack("<hh", 1, 3) + _v5_note(0)  # tick 0, layer 2
    data += struct.pack("<hh", 0, 0)
    data += _v5_layer("Only")
    data += struct.pack("<B", 0)

    song = decode_bytes(data)
    assert song.layers_count == 3
    assert song.layer(0).name == "Only"
    assert song.layer(2).name == ""
    assert song.note_at(0, 2) == Note()


def test_carriage_return_in_string_becomes_space() -> None:
    data = _v5_header(length=0, layers=0)
    data += _metadata(loop=True, title="line\rbreak")
    data += struct.pack("<h", 0)
    data += struct.pack("<B", 0)
    assert decode_bytes(data).metadata.title == "line break"


def test_zero_tempo_falls_back_to_default() -> None:
    data = _v5_header(length=0, layers=0) + _metadata(tempo=0, loop=True)
    data += struct.pack("<hB", 0, 0)
    assert decode_bytes(data).tempo_at(0) == 10.0


def test_out_of_range_values_are_clamped() -> None:
    data = _v5_header(length=0, layers=1)
    data += _metadata(loop=True)
    data += struct.pack("<hh", 1, 1) + _v5_note(0, key=120, volume=255, disk_panning=255)
    data += struct.pack("<hh", 0, 0)
    data += _v5_layer("", volume=200)
    data += struct.pack("<B", 0)

    song = decode_bytes(data)
    assert song.note_at(0, 0) == Note(key=87, volume=100, panning=-100)
    assert song.layer(0).volume == 100


# ── Tempo markers ────────────────────────────────────────────────────────────

def test_tempo_marker_notes_become_tempo_changes() -> None:
    data = _v5_header(length=0, layers=2)
    data += _metadata(tempo=800, loop=True)
    data += struct.pack("<hh", 1, 1) + _v5_note(0)
    data += struct.pack("<h", 0)
    data += struct.pack("<hh", 5, 2) + _v5_note(16, pitch=300)  # tick 4, layer 1
    data += struct.pack("<hh", 0, 0)
    data += _v5_layer("Melody") + _v5_layer(TEMPO_CHANGER_INSTRUMENT_NAME)
    data += struct.pack("<B", 1)
    data += _string(TEMPO_CHANGER_INSTRUMENT_NAME) + _string("") + struct.pack("<BB", 45, 0)

    song = decode_bytes(data)
    assert song.tempo_map.as_dict() == {INITIAL_TICK: 8.0, 4: 20.0}
    assert song.layers_count == 1
    assert song.notes_count == 1
    assert song.next_non_empty_tick(0) == 4
    assert song.custom_instrument(0).is_tempo_changer


def test_marker_notes_on_named_layer_keep_the_layer() -> None:
    data = _v5_header(length=0, layers=1)
    data += _metadata(tempo=500, loop=True)
    data += struct.pack("<hh", 3, 1) + _v5_note(16, pitch=-150)
    data += struct.pack("<hh", 0, 0)
    data += _v5_layer("Conductor")
    data += struct.pack("<B", 1)
    data += _string(TEMPO_CHANGER_INSTRUMENT_NAME) + _string("") + struct.pack("<BB", 45, 0)

    song = decode_bytes(data)
    assert song.tempo_at(1) == 5.0
    assert song.tempo_at(2) == 10.0
    assert song.layers_count == 1
    assert song.layer(0).is_empty


# ── Corruption ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize("cut", [1, 5, 20])
def test_truncated_stream_raises_song_corrupted(cut: int) -> None:
    data = _legacy_song()[:-cut]
    with pytest.raises(SongCorruptedError) as excinfo:
        decode_bytes(data)
    assert isinstance(excinfo.value.__cause__, EOFError)
    assert str(excinfo.value).startswith("Song corrupted!")


def test_layer_jumps_past_layer_count_range_raise_song_corrupted() -> None:
    data = _v5_header(length=0, layers=0)
    data += _metadata(loop=True)
    data += struct.pack("<h", 1)
    data += struct.pack("<h", 32767) + _v5_note(0)
    data += struct.pack("<h", 32767) + _v5_note(0)
    data += struct.pack("<h", 32767) + _v5_note(0)
    data += struct.pack("<hh", 0, 0)
    data += struct.pack("<B", 0)
    with pytest.raises(SongCorruptedError) as excinfo:
        decode_bytes(data)
    assert isinstance(excinfo.value.__cause__, OverflowError)


def test_stream_truncated_inside_notes_raises_song_corrupted() -> None:
    builder = SongBuilder()
    builder.add_layer()
    builder.add_layer()
    no_notes = encode_bytes(builder.build(), NBSVersion.V5)
    for tick, layer in [(0, 0), (2, 1), (7, 0), (7, 1)]:
        builder.set_note(tick, layer, Note(instrument=1, key=30 + tick, pitch=-5))
    data = encode_bytes(builder.build(), NBSVersion.V5)

    trailer = 2 * _V5_EMPTY_LAYER_SIZE + 1  # layer attributes + custom instrument count
    notes_start = len(no_notes) - trailer - 2
    notes_end = len(data) - trailer
    assert notes_end - notes_start > 30
    for cut in range(notes_start, notes_end):
        with pytest.raises(SongCorruptedError) as excinfo:
            decode_bytes(data[:cut])
        assert isinstance(excinfo.value.__cause__, EOFError), cut


def test_negative_string_length_raises_song_corrupted() -> None:
    data = _v5_header(length=0, layers=0) + struct.pack("<i", -4)
    with pytest.raises(SongCorruptedError):
        decode_bytes(data)


def test_unknown_revision_raises_song_corrupted() -> None:
    data = struct.pack("<HBBHH", 0, 9, 16, 0, 0)
    with pytest.raises(SongCorruptedError):
        decode_bytes(data)


def test_empty_stream_raises_song_corrupted() -> None:
    with pytest.raises(SongCorruptedError):
        decode_bytes(b"")


def test_header_not_set_after_failure() -> None:
    decoder = SongDecoder(io.BytesIO(b"\x00"))
    with pytest.raises(SongCorruptedError):
        decoder.decode()
    assert decoder.header is None


def test_load_reads_from_path(tmp_path) -> None:
    path = tmp_path / "legacy.nbs"
    path.write_bytes(_legacy_song())
    assert load(path).song_length == 5


def test_load_missing_file_raises_os_error(tmp_path) -> None:
    with pytest.raises(OSError):
        load(tmp_path / "missing.nbs")
