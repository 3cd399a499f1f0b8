"""Font references in ASS/SSA subtitles.

Two places name fonts: the Fontname column of ``Style:`` lines and inline
``\\fn`` override tags inside the Text column of ``Dialogue:``/``Comment:``
lines. Column positions come from the section's ``Format:`` line.
"""

import logging
from pathlib import Path
from typing import Iterator, Optional

from subfontloader.files import read_text
from subfontloader.fontnames import normalize_font_name

logger = logging.getLogger(__name__)

SECTION_NONE = "none"
SECTION_STYLES = "styles"
SECTION_EVENTS = "events"
SECTION_OTHER = "other"

DEFAULT_FONTNAME_INDEX = 1
DEFAULT_TEXT_INDEX = 9

EVENT_KEYWORDS = ("dialogue:", "comment:")


class ColumnMap:
    """Column positions declared by a ``Format:`` line."""

    def __init__(self, labels: list[str]):
        self.labels = labels
        self._positions: dict[str, int] = {}
        for i, label in enumerate(labels):
            self._positions.setdefault(label, i)

    @classmethod
    def parse(cls, line: str) -> "ColumnMap":
        content = line[len("format:") :]
        return cls([label.strip().lower() for label in content.split(",")])

    def index(self, label: str, default: int) -> int:
        return self._positions.get(label.lower(), default)

    def __contains__(self, label: str) -> bool:
        return label.lower() in self._positions


def section_kind(header: str) -> str:
    name = header[1:-1].strip().lower()
    if "styles" in name:
        return SECTION_STYLES
    if "events" in name:
        return SECTION_EVENTS
    return SECTION_OTHER


def style_font(line: str, column: int) -> Optional[str]:
    fields = line[len("style:") :].split(",")
    if column >= len(fields):
        return None
    return normalize_font_name(fields[column])


def event_text(line: str, column: int) -> Optional[str]:
    """Payload of an event line; commas inside the Text column survive."""
    content = line.split(":", 1)[1].lstrip()
    parts = content.split(",", column)
    if len(parts) <= column:
        return None
    return parts[column]


def iter_fn_tags(text: str) -> Iterator[str]:
    """Yields raw font names of ``\\fn`` override tags in event text."""
    pos = 0
    while True:
        found = text.find("\\fn", pos)
        if found < 0:
            return
        start = found + 3
        while start < len(text) and text[start].isspace():
            start += 1
        if text.startswith("(", start):
            close = text.find(")", start + 1)
            if close >= 0:
                yield text[start + 1 : close]
                pos = close + 1
                continue
        end = start
        while end < len(text) and text[end] not in "\\}":
            end += 1
        yield text[start:end]
        pos = max(end, start)


def extract_fonts(text: str) -> set[str]:
    """Normalized font names referenced by an ASS/SSA document."""
    fonts = set()
    section = SECTION_NONE
    columns: Optional[ColumnMap] = None

    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("[") and line.endswith("]"):
            section = section_kind(line)
            columns = None
            continue

        lower = line.lower()
        if section == SECTION_STYLES:
            if lower.startswith("format:"):
                columns = ColumnMap.parse(line)
            elif lower.startswith("style:"):
                column = (
                    columns.index("fontname", DEFAULT_FONTNAME_INDEX)
                    if columns
                    else DEFAULT_FONTNAME_INDEX
                )
                font = style_font(line, column)
                if font:
                    fonts.add(font)
        elif section == SECTION_EVENTS:
            if lower.startswith("format:"):
                columns = ColumnMap.parse(line)
            elif lower.startswith(EVENT_KEYWORDS):
                column = (
                    columns.index("text", DEFAULT_TEXT_INDEX)
                    if columns
                    else DEFAULT_TEXT_INDEX
                )
                payload = event_text(line, column)
                if payload is None:
                    continue
                for raw_name in iter_fn_tags(payload):
                    font = normalize_font_name(raw_name)
                    if font:
                        fonts.add(font)
    return fonts


def extract_fonts_from_file(path: Path) -> set[str]:
    text = read_text(path)
    if text is None:
        return set()
    fonts = extract_fonts(text)
    logger.debug("Extracted %d font name(s) from %s", len(fonts), path)
    return fonts
