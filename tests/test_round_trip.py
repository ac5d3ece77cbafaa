"""Encode-then-decode behaviour across format revisions."""

from dataclasses import replace

import pytest

from nbsong.decoder import decode_bytes
from nbsong.encoder import encode_bytes
from nbsong.song import Song, SongBuilder
from nbsong.song_models import (
    TEMPO_CHANGER_INSTRUMENT_NAME,
    CustomInstrument,
    Instrument,
    NBSVersion,
    Note,
)
from nbsong.tempo_map import INITIAL_TICK

TEMPO_CHANGES = {INITIAL_TICK: 8.0, 5: 20.0, 15: 20.0}


def _full_song() -> Song:
    builder = SongBuilder()
    builder.set_metadata(
        title="Overworld",
        author="someone",
        original_author="someone else",
        description="two layers\nand a custom drum",
        auto_save=True,
        auto_save_duration=5,
        time_signature=3,
        minutes_spent=42,
        left_clicks=1200,
        right_clicks=80,
        notes_added=300,
        notes_removed=12,
        original_midi_file_name="overworld.mid",
        loop=True,
        loop_max_count=2,
        loop_start_tick=4,
    )
    builder.add_layer("Lead", volume=80, panning=-20, locked=True)
    builder.add_layer("Rhythm", volume=65)
    builder.add_custom_instrument(CustomInstrument("Drum", "drum.ogg", key=50, press_key=True))

    builder.set_note(0, 0, Note(instrument=Instrument.HARP, key=45, volume=90, panning=10, pitch=25))
    builder.set_note(3, 1, Note(instrument=Instrument.GUITAR, key=30))
    builder.set_note(5, 0, Note(instrument=0, is_custom=True, key=60, volume=40))
    builder.set_note(12, 1, Note(instrument=Instrument.BASS, key=20, panning=-100, pitch=-300))
    for tick, tempo in TEMPO_CHANGES.items():
        builder.set_tempo_change(tick, tempo)
    return builder.build()


def _round_trip(song: Song, revision: NBSVersion) -> Song:
    return decode_bytes(encode_bytes(song, revision))


@pytest.mark.parametrize("revision", [NBSVersion.V4, NBSVersion.V5])
def test_full_revision_preserves_everything(revision: NBSVersion) -> None:
    song = _full_song()
    decoded = _round_trip(song, revision)

    assert decoded.metadata == song.metadata
    assert decoded.layers == song.layers
    assert decoded.tempo_map.as_dict() == TEMPO_CHANGES
    assert decoded.song_length == song.song_length == 16
    assert decoded.length_in_seconds == pytest.approx(song.length_in_seconds)
    assert decoded.custom_instruments == song.custom_instruments + (
        CustomInstrument(name=TEMPO_CHANGER_INSTRUMENT_NAME),
    )


@pytest.mark.parametrize("revision", [NBSVersion.V1, NBSVersion.V2, NBSVersion.V3])
def test_old_revisions_drop_note_details_and_tempo_changes(revision: NBSVersion) -> None:
    song = _full_song()
    decoded = _round_trip(song, revision)

    assert decoded.tempo_map.as_dict() == {INITIAL_TICK: 8.0}
    assert decoded.custom_instruments == song.custom_instruments
    assert decoded.metadata == replace(song.metadata, loop=False, loop_max_count=0, loop_start_tick=0)
    for (tick, layer, note), (decoded_tick, decoded_layer, decoded_note) in zip(
        song.iter_notes(), decoded.iter_notes(), strict=True
    ):
        assert (decoded_tick, decoded_layer) == (tick, layer)
        assert decoded_note == Note(instrument=note.instrument, is_custom=note.is_custom, key=note.key)
    assert not decoded.layer(0).locked
    assert [layer.volume for layer in decoded.layers] == [80, 65]


@pytest.mark.parametrize(
    "revision, expected_length",
    [(NBSVersion.V1, 13), (NBSVersion.V2, 13), (NBSVersion.V3, 16)],
)
def test_declared_length_from_revision_three(revision: NBSVersion, expected_length: int) -> None:
    assert _round_trip(_full_song(), revision).song_length == expected_length


@pytest.mark.parametrize(
    "revision, stereo",
    [(NBSVersion.V1, False), (NBSVersion.V2, True), (NBSVersion.V5, True)],
)
def test_layer_panning_from_revision_two(revision: NBSVersion, stereo: bool) -> None:
    decoded = _round_trip(_full_song(), revision)
    assert decoded.is_stereo is stereo
    assert decoded.layer(0).panning == (-20 if stereo else 0)


def test_second_round_trip_is_stable() -> None:
    first = _round_trip(_full_song(), NBSVersion.V5)
    second = _round_trip(first, NBSVersion.V5)
    assert second.layers == first.layers
    assert second.custom_instruments == first.custom_instruments
    assert second.tempo_map == first.tempo_map
    assert second.song_length == first.song_length


def test_empty_song_round_trips() -> None:
    decoded = _round_trip(SongBuilder().build(), NBSVersion.V5)
    assert decoded.layers_count == 0
    assert decoded.song_length == 0
    assert decoded.tempo_at(0) == 10.0


def test_unicode_strings_survive() -> None:
    builder = SongBuilder()
    builder.set_metadata(title="Mélodie 音楽")
    builder.add_layer("Flûte")
    decoded = _round_trip(builder.build(), NBSVersion.V5)
    assert decoded.metadata.title == "Mélodie 音楽"
    assert decoded.layer(0).name == "Flûte"
