import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

SUBTITLE_EXTENSIONS = {".ass", ".ssa", ".srt", ".vtt", ".sub", ".idx", ".sup"}
ASS_EXTENSIONS = {".ass", ".ssa"}
FONT_EXTENSIONS = {".ttf", ".otf", ".ttc"}

# Tried in order once no BOM is found.
TEXT_ENCODINGS = ("utf-8", "gb18030")


@dataclass
class ClassifiedFiles:
    """Discovered files routed by extension."""

    subtitles: list[Path] = field(default_factory=list)
    fonts: list[Path] = field(default_factory=list)
    ignored: list[Path] = field(default_factory=list)

    @property
    def ass_subtitles(self) -> list[Path]:
        return [p for p in self.subtitles if is_ass_file(p)]

    @property
    def unsupported_subtitles(self) -> list[Path]:
        return [p for p in self.subtitles if not is_ass_file(p)]


def is_subtitle_file(path: Path) -> bool:
    return path.suffix.lower() in SUBTITLE_EXTENSIONS


def is_ass_file(path: Path) -> bool:
    return path.suffix.lower() in ASS_EXTENSIONS


def is_font_file(path: Path) -> bool:
    return path.suffix.lower() in FONT_EXTENSIONS


def walk_dir(dir_path: Path) -> list[Path]:
    """Recursively lists files below dir_path.

    Unreadable directories are skipped, directory symlinks are followed.
    Entries are sorted per directory so the order is stable between runs.
    """
    files = []
    for root, dirnames, filenames in os.walk(
        dir_path, onerror=_log_walk_error, followlinks=True
    ):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(root) / name
            if path.is_file():
                files.append(path.absolute())
    return files


def _log_walk_error(err: OSError):
    logger.debug("Skipping unreadable directory %s: %s", err.filename, err)


def collect_files(paths: Iterable[str | Path]) -> list[Path]:
    """Expands input paths (files or directories) into a flat file list."""
    files = []
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            files.append(path.absolute())
        elif path.is_dir():
            files.extend(walk_dir(path))
        else:
            logger.debug(f"Input path not found: {path}")
    return files


def classify_files(files: Iterable[Path]) -> ClassifiedFiles:
    result = ClassifiedFiles()
    for path in files:
        if is_subtitle_file(path):
            result.subtitles.append(path)
        elif is_font_file(path):
            result.fonts.append(path)
        else:
            result.ignored.append(path)
    logger.debug(
        "Classified %d subtitle(s), %d font(s), %d ignored",
        len(result.subtitles),
        len(result.fonts),
        len(result.ignored),
    )
    return result


def decode_text(data: bytes) -> Optional[str]:
    if data.startswith(b"\xff\xfe"):
        return _decode_utf16(data[2:], "utf-16-le")
    if data.startswith(b"\xfe\xff"):
        return _decode_utf16(data[2:], "utf-16-be")
    if data.startswith(b"\xef\xbb\xbf"):
        data = data[3:]
    for enc in TEXT_ENCODINGS:
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            continue
    return None


def _decode_utf16(data: bytes, encoding: str) -> Optional[str]:
    if len(data) % 2:
        return None
    return data.decode(encoding, errors="replace")


def read_text(path: Path) -> Optional[str]:
    """Reads a subtitle file, returning None if it cannot be read or decoded."""
    try:
        data = path.read_bytes()
    except OSError as e:
        logger.debug("Failed to read %s: %s", path, e)
        return None
    text = decode_text(data)
    if text is None:
        logger.debug(f"Could not decode {path}")
    return text
