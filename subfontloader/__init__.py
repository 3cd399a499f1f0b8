"""Load the fonts that ASS/SSA subtitles ask for, for the current session."""

__version__ = "0.1.0"
