"""CLI tests driven through click's CliRunner."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from nbsong.cli import main
from nbsong.encoder import save
from nbsong.song import SongBuilder
from nbsong.song_models import Note
from nbsong.tempo_map import INITIAL_TICK


@pytest.fixture
def song_file(tmp_path: Path) -> Path:
    builder = SongBuilder()
    builder.set_metadata(title="Demo", author="tester")
    builder.add_layer("Lead")
    builder.add_layer("Bass", panning=30)
    builder.set_note(0, 0, Note(instrument=6))
    builder.set_note(4, 1, Note(instrument=1, key=20))
    builder.set_tempo_change(INITIAL_TICK, 5.0)
    builder.set_tempo_change(2, 10.0)
    path = tmp_path / "demo.nbs"
    save(builder.build(), path)
    return path


def test_info_prints_song_summary(song_file: Path) -> None:
    result = CliRunner().invoke(main, ["info", str(song_file)])
    assert result.exit_code == 0, result.output
    assert "Revision    : 5" in result.output
    assert "Title       : Demo" in result.output
    assert "Layers      : 2" in result.output
    assert "Notes       : 2" in result.output
    assert "Length      : 5 ticks" in result.output
    assert "tick 2: 10 t/s" in result.output
    assert "Stereo      : yes" in result.output


def test_convert_writes_requested_revision(song_file: Path, tmp_path: Path) -> None:
    output = tmp_path / "old.nbs"
    result = CliRunner().invoke(main, ["convert", str(song_file), "-r", "3", "-o", str(output)])
    assert result.exit_code == 0, result.output
    assert output.read_bytes()[2] == 3


def test_convert_default_output_name(song_file: Path) -> None:
    result = CliRunner().invoke(main, ["convert", str(song_file), "--revision", "1"])
    assert result.exit_code == 0, result.output
    assert song_file.with_name("demo.v1.nbs").exists()


def test_convert_rejects_unknown_revision(song_file: Path) -> None:
    result = CliRunner().invoke(main, ["convert", str(song_file), "-r", "6"])
    assert result.exit_code == 2


def test_midi_writes_file(song_file: Path) -> None:
    result = CliRunner().invoke(main, ["midi", str(song_file), "--bpm", "100"])
    assert result.exit_code == 0, result.output
    assert song_file.with_suffix(".mid").read_bytes().startswith(b"MThd")


def test_corrupted_file_exits_with_error(tmp_path: Path) -> None:
    broken = tmp_path / "broken.nbs"
    broken.write_bytes(b"\x00\x00\x05")
    result = CliRunner().invoke(main, ["info", str(broken)])
    assert result.exit_code == 1
    assert "ERROR" in result.output


def test_verbose_flag_is_accepted(song_file: Path) -> None:
    result = CliRunner().invoke(main, ["--verbose", "info", str(song_file)])
    assert result.exit_code == 0, result.output
