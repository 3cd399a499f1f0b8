"""Reads the family and full names a font file declares.

Fonts are opened lazily with fontTools and only the ``name`` table is
decompiled. A damaged font, or a damaged member of a collection, contributes
no names instead of raising.
"""

import io
import logging
from pathlib import Path
from typing import Optional

from fontTools.ttLib import TTFont, TTLibFileIsCollectionError
from fontTools.ttLib.sfnt import readTTCHeader

logger = logging.getLogger(__name__)

PLATFORM_WINDOWS = 3
NAME_ID_FAMILY = 1
NAME_ID_FULL = 4
WANTED_NAME_IDS = {NAME_ID_FAMILY, NAME_ID_FULL}


def normalize_font_name(name: str) -> Optional[str]:
    """Strips NULs, surrounding whitespace and leading vertical flags ``@``.

    Returns None when nothing is left.
    """
    s = name.replace("\x00", "").strip()
    while s.startswith("@"):
        s = s[1:].strip()
    return s or None


def font_key(name: str) -> str:
    """Index key for a normalized name."""
    return name.lower()


def decode_name_string(raw: bytes) -> str:
    # An odd trailing byte cannot form a UTF-16 code unit.
    if len(raw) % 2:
        raw = raw[:-1]
    return raw.decode("utf-16-be", errors="replace")


def names_from_font(font: TTFont) -> set[str]:
    """Windows family and full names of an opened font."""
    names = set()
    if "name" not in font:
        return names
    for record in font["name"].names:
        if record.platformID != PLATFORM_WINDOWS or record.nameID not in WANTED_NAME_IDS:
            continue
        name = normalize_font_name(decode_name_string(record.string))
        if name:
            names.add(name)
    return names


def _read_member(data: bytes, font_number: int = -1) -> set[str]:
    font = TTFont(io.BytesIO(data), fontNumber=font_number, lazy=True)
    try:
        return names_from_font(font)
    finally:
        font.close()


def read_font_names(data: bytes) -> set[str]:
    """Names declared by a single font or by every font of a collection."""
    try:
        return _read_member(data)
    except TTLibFileIsCollectionError:
        pass
    except Exception as e:
        logger.debug(f"Not a readable font: {e}")
        return set()

    try:
        count = readTTCHeader(io.BytesIO(data)).numFonts
    except Exception as e:
        logger.debug(f"Unreadable font collection header: {e}")
        return set()

    # Table offsets inside a collection member are absolute file offsets,
    # not relative to the member's own header.
    names = set()
    for i in range(count):
        try:
            names.update(_read_member(data, i))
        except Exception as e:
            logger.debug(f"Skipping collection member {i}: {e}")
    return names


def read_font_file_names(path: str | Path) -> set[str]:
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        logger.debug("Failed to read font %s: %s", path, e)
        return set()
    names = read_font_names(data)
    if not names:
        logger.debug(f"No usable names in {path}")
    return names
