"""MidiExporter: renders a Song's layers into a multi-track MIDI file."""

from midiutil import MIDIFile

from nbsong.song import Song
from nbsong.song_models import MAXIMUM_PANNING, MAXIMUM_VOLUME, Layer, Note

# In midiutil Format 1 MIDI, track 0 is the conductor/tempo track.
TRACK_CONDUCTOR = 0  # tempo events only
FIRST_LAYER_TRACK = 1

# General MIDI reserves channel 10 (index 9) for percussion.
PERCUSSION_CHANNEL = 9
MIDI_CHANNELS = 16

CC_PAN = 10
KEY_TO_MIDI_OFFSET = 21  # key 0 is A0 = MIDI 21
SEMITONE_PITCH = 100     # fine pitch units per semitone


def _channel_for_layer(layer_index: int) -> int:
    """Spread layers over the 15 melodic channels, skipping percussion."""
    channel = layer_index % (MIDI_CHANNELS - 1)
    return channel + 1 if channel >= PERCUSSION_CHANNEL else channel


class MidiExporter:
    """
    Writes one MIDI track per song layer.

    Track layout (Format 1)
    -----------------------
    Track 0     — conductor track (a single fixed tempo, no notes)
    Track 1..n  — one per layer, named after the layer, panned with CC 10.

    Timing
    ------
    Song ticks are first converted to seconds through the song's own tempo
    map (``Song.time_in_seconds_at``), then to beats at the exporter's fixed
    tempo: beats = seconds × (bpm / 60). Tempo automation is therefore baked
    into note positions rather than written as MIDI tempo events.

    Note blocks have no length; every note lasts ``note_seconds``.
    """

    DEFAULT_BPM = 120            # conductor tempo of the exported file
    DEFAULT_NOTE_SECONDS = 0.25  # sounding length given to every note block

    def __init__(
        self,
        bpm: int = DEFAULT_BPM,
        note_seconds: float = DEFAULT_NOTE_SECONDS,
    ) -> None:
        """
        Args:
            bpm:          Conductor tempo in beats per minute.
            note_seconds: Duration written for each note, in seconds.
        """
        if bpm <= 0:
            raise ValueError("bpm must be positive.")
        if note_seconds <= 0:
            raise ValueError("note_seconds must be positive.")
        self.bpm = bpm
        self.note_seconds = note_seconds

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _seconds_to_beats(self, seconds: float) -> float:
        """Convert a time in seconds to beats at the exporter tempo."""
        return seconds * (self.bpm / 60.0)

    def _midi_pitch(self, note: Note) -> int:
        semitones = round(note.pitch / SEMITONE_PITCH)
        return max(0, min(127, note.key + KEY_TO_MIDI_OFFSET + semitones))

    def _velocity(self, note: Note, layer: Layer) -> int:
        loudness = (note.volume / MAXIMUM_VOLUME) * (layer.volume / MAXIMUM_VOLUME)
        return max(0, min(127, round(loudness * 127)))

    def _pan_value(self, panning: int) -> int:
        """Map [-100, 100] panning onto the MIDI pan controller [0, 127]."""
        return max(0, min(127, round(64 + panning * 63 / MAXIMUM_PANNING)))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, song: Song) -> MIDIFile:
        """Render ``song`` into an in-memory ``MIDIFile``."""
        midi = MIDIFile(
            numTracks=song.layers_count + FIRST_LAYER_TRACK,
            removeDuplicates=False,
            deinterleave=False,
        )

        # --- Track 0: conductor ---
        midi.addTempo(TRACK_CONDUCTOR, 0, self.bpm)

        for layer_index, layer in enumerate(song.layers):
            track = layer_index + FIRST_LAYER_TRACK
            channel = _channel_for_layer(layer_index)
            midi.addTrackName(track, 0, layer.name or f"Layer {layer_index + 1}")
            if layer.panning:
                midi.addControllerEvent(track, channel, 0, CC_PAN, self._pan_value(layer.panning))

        duration_beats = self._seconds_to_beats(self.note_seconds)
        for tick, layer_index, note in song.iter_notes():
            layer = song.layer(layer_index)
            velocity = self._velocity(note, layer)
            if velocity == 0:
                continue
            midi.addNote(
                track=layer_index + FIRST_LAYER_TRACK,
                channel=_channel_for_layer(layer_index),
                pitch=self._midi_pitch(note),
                time=self._seconds_to_beats(song.time_in_seconds_at(tick)),
                duration=duration_beats,
                volume=velocity,
            )

        return midi

    def export(self, song: Song, output_path: str) -> None:
        """
        Render ``song`` to a Standard MIDI File (SMF format 1).

        Args:
            song:        Song to render.
            output_path: Destination file path (e.g. "output.mid").

        Raises:
            OSError: If the output file cannot be opened for writing.
        """
        midi = self.build(song)
        with open(output_path, "wb") as f:
            midi.writeFile(f)
