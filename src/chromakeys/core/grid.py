"""
Trigger grid geometry.

The instrument surface is a 12 x 3 grid of cells. Each cell maps to a MIDI
note (three octaves of naturals from C3) and to a fixed point in simulation
space where the attractor is placed.
"""

GRID_COLS = 12
GRID_ROWS = 3

# Column -> semitone within the octave; sharps fold onto their neighbours
COL_TO_SEMITONE = (0, 0, 2, 4, 5, 7, 7, 9, 11, 11, 0, 0)
NATURAL_SEMITONES = (0, 2, 4, 5, 7, 9, 11)
SUSTAIN_CLASSES = (0, 2, 4, 5)  # C, D, E, F ring on
NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

# Lowest-row note is C3
BASE_MIDI = 48

# Semitone -> first column playing it
_SEMITONE_TO_COL = {0: 0, 2: 2, 4: 3, 5: 4, 7: 5, 9: 7, 11: 8}

DRUM_KINDS = (
    "kick",
    "snare",
    "808",
    "clap",
    "hat_closed",
    "hat_open",
    "rim",
    "snap",
    "tom_low",
    "tom_mid",
    "ride",
)
DRUM_ROW = 1


def validate_cell(col: int, row: int) -> None:
    """Raise ValueError unless (col, row) lies on the grid."""
    if not (0 <= col < GRID_COLS and 0 <= row < GRID_ROWS):
        raise ValueError(
            f"Cell ({col}, {row}) outside the {GRID_COLS}x{GRID_ROWS} grid"
        )


def cell_to_position(col: int, row: int) -> tuple[float, float, float]:
    """Affine map from a grid cell to simulation space (z is always 0)."""
    x = ((col + 0.5) / GRID_COLS) * 3.0 - 1.5
    y = 0.6 - (row + 0.5) / GRID_ROWS * 1.2
    return (x, y, 0.0)


def drum_to_cell(index: int) -> tuple[int, int]:
    """Drum pads light the middle row, one column per pad."""
    return (index % GRID_COLS, DRUM_ROW)


def drum_kind(index: int) -> str:
    return DRUM_KINDS[index % len(DRUM_KINDS)]


def snap_to_natural(midi: int) -> int:
    """Snap a MIDI note to the nearest natural (white-key) note; sharps round up."""
    octave, semitone = divmod(midi, 12)
    nearest = min(NATURAL_SEMITONES, key=lambda s: (abs(semitone - s), -s))
    return octave * 12 + nearest


def cell_to_midi(col: int, row: int) -> int:
    return BASE_MIDI + (2 - row) * 12 + COL_TO_SEMITONE[col]


def midi_to_cell(midi: int) -> tuple[int, int]:
    """Inverse of cell_to_midi for naturals; other notes are snapped first."""
    m = snap_to_natural(midi)
    row = max(0, min(GRID_ROWS - 1, 2 - (m - BASE_MIDI) // 12))
    return (_SEMITONE_TO_COL.get(m % 12, 0), row)


def is_sustain_note(midi: int) -> bool:
    return midi % 12 in SUSTAIN_CLASSES


def midi_to_freq(midi: float) -> float:
    return 440.0 * 2.0 ** ((midi - 69) / 12.0)


def note_name(midi: int) -> str:
    """e.g. 60 -> 'C4'."""
    return f"{NOTE_NAMES[midi % 12]}{midi // 12 - 1}"
