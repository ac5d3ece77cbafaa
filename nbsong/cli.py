"""nbsong CLI entry point."""

import logging
import sys
from pathlib import Path

import click

from nbsong import __version__
from nbsong.decoder import SongDecoder
from nbsong.encoder import save
from nbsong.errors import SongCorruptedError
from nbsong.midi_exporter import MidiExporter
from nbsong.song import Song
from nbsong.song_models import NBSVersion
from nbsong.tempo_map import INITIAL_TICK

REVISIONS = [str(int(version)) for version in NBSVersion]  # aliases are not iterated


def _load_song(song_file: str) -> tuple[Song, int]:
    """Decode ``song_file``; exit with status 1 if it cannot be read."""
    try:
        with open(song_file, "rb") as fh:
            decoder = SongDecoder(fh)
            song = decoder.decode()
    except SongCorruptedError as exc:
        click.echo(f"  ERROR: Could not read song — {exc} ({exc.__cause__})", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"  ERROR: Could not open song file — {exc}", err=True)
        sys.exit(1)
    return song, decoder.header.revision if decoder.header else 0


def _format_tempo_map(song: Song) -> str:
    parts = []
    for tick, tempo in song.tempo_map.as_dict().items():
        label = "start" if tick == INITIAL_TICK else f"tick {tick}"
        parts.append(f"{label}: {tempo:g} t/s")
    return ", ".join(parts) or f"default ({song.tempo_at(0):g} t/s)"


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="nbsong")
@click.option("--verbose", "-v", is_flag=True, help="Print codec debug logging to stderr.")
def main(verbose: bool) -> None:
    """nbsong — read, convert and export note block songs."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


# ── info subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("song_file", type=click.Path(exists=True, dir_okay=False, readable=True))
def info(song_file: str) -> None:
    """
    Show the structure of a song file.

    SONG_FILE is the path to an existing .nbs file.
    """
    song, revision = _load_song(song_file)
    metadata = song.metadata

    click.echo(f"nbsong v{__version__}")
    click.echo(f"  File        : {song_file}")
    click.echo(f"  Revision    : {revision if revision else 'legacy (pre-revision)'}")
    click.echo(f"  Title       : {metadata.title or '-'}")
    click.echo(f"  Author      : {metadata.author or '-'}")
    click.echo(f"  Layers      : {song.layers_count}")
    click.echo(f"  Notes       : {song.notes_count}")
    click.echo(f"  Length      : {song.song_length} ticks ({song.length_in_seconds:.2f} s)")
    click.echo(f"  Tempo       : {_format_tempo_map(song)}")
    click.echo(f"  Instruments : {song.non_custom_instruments_count} built-in, "
               f"{len(song.custom_instruments)} custom")
    for index, instrument in enumerate(song.custom_instruments):
        click.echo(f"        [{index}] {instrument.name} ({instrument.file_name or 'no file'})")
    click.echo(f"  Stereo      : {'yes' if song.is_stereo else 'no'}")


# ── convert subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.argument("song_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--revision",
    "-r",
    type=click.Choice(REVISIONS),
    default=str(int(NBSVersion.LATEST)),
    show_default=True,
    help="Target format revision. Revisions below 4 drop note volume, panning, "
         "pitch and tempo changes.",
)
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination song file. Defaults to <name>.v<revision>.nbs.",
)
def convert(song_file: str, revision: str, output: str | None) -> None:
    """
    Re-encode a song file in another format revision.

    \b
    Examples:
      nbsong convert my_song.nbs --revision 3
      nbsong convert my_song.nbs -r 5 -o upgraded.nbs
    """
    song_path = Path(song_file)
    resolved_output = output if output is not None else str(
        song_path.with_name(f"{song_path.stem}.v{revision}.nbs")
    )

    song, source_revision = _load_song(song_file)
    click.echo(f"[1/2] Read revision {source_revision} song: "
               f"{song.layers_count} layer(s), {song.notes_count} note(s)")

    click.echo(f"[2/2] Writing revision {revision} → '{resolved_output}'...")
    try:
        save(song, resolved_output, int(revision))
    except ValueError as exc:
        click.echo(f"  ERROR: Song does not fit revision {revision} — {exc}", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write song file — {exc}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(f"Done!  Wrote '{resolved_output}'.")


# ── midi subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("song_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination MIDI file path. Defaults to <name>.mid.",
)
@click.option(
    "--bpm",
    type=click.IntRange(20, 300),
    default=MidiExporter.DEFAULT_BPM,
    show_default=True,
    help="Conductor tempo of the MIDI file. Note positions follow the song's own tempo.",
)
@click.option(
    "--note-length",
    type=float,
    default=MidiExporter.DEFAULT_NOTE_SECONDS,
    show_default=True,
    metavar="SECS",
    help="Sounding length given to every note block.",
)
def midi(song_file: str, output: str | None, bpm: int, note_length: float) -> None:
    """
    Export a song file as a Standard MIDI File, one track per layer.

    \b
    Examples:
      nbsong midi my_song.nbs
      nbsong midi my_song.nbs -o my_song.mid --bpm 100
    """
    resolved_output = output if output is not None else str(Path(song_file).with_suffix(".mid"))

    song, _ = _load_song(song_file)
    click.echo(f"[1/2] Read song: {song.layers_count} layer(s), "
               f"{song.length_in_seconds:.2f} s")

    click.echo(f"[2/2] Writing MIDI file → '{resolved_output}'...")
    try:
        exporter = MidiExporter(bpm=bpm, note_seconds=note_length)
        exporter.export(song, resolved_output)
    except ValueError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write MIDI file — {exc}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(f"Done!  Open '{resolved_output}' in any MIDI player.")
