import io
import struct
from collections import Counter
from pathlib import Path

from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.ttLib import TTCollection, TTFont

from subfontloader.activation import FontActivator

FAMILY = 1
SUBFAMILY = 2
FULL = 4


def win_name(name_id: int, text: str) -> tuple:
    return (3, 1, 0x0409, name_id, text.encode("utf-16-be"))


def mac_name(name_id: int, text: str) -> tuple:
    return (1, 0, 0, name_id, text.encode("mac_roman"))


def name_table(records: list[tuple]) -> bytes:
    """records: (platform, encoding, language, name_id, raw bytes)"""
    storage = b""
    packed = b""
    for platform_id, encoding_id, lang_id, name_id, raw in records:
        packed += struct.pack(
            ">6H", platform_id, encoding_id, lang_id, name_id, len(raw), len(storage)
        )
        storage += raw
    header = struct.pack(">3H", 0, len(records), 6 + 12 * len(records))
    return header + packed + storage


def sfnt(tables: dict[bytes, bytes], base: int = 0) -> bytes:
    """A bare sfnt with the given tables; offsets are absolute from ``base``."""
    directory = b""
    body = b""
    data_start = base + 12 + 16 * len(tables)
    for tag, data in tables.items():
        directory += struct.pack(">4sIII", tag, 0, data_start + len(body), len(data))
        body += data + b"\0" * (-len(data) % 4)
    header = struct.pack(">IHHHH", 0x00010000, len(tables), 0, 0, 0)
    return header + directory + body


def font_bytes(family: str, full: str = None) -> bytes:
    records = [win_name(FAMILY, family), win_name(SUBFAMILY, "Regular")]
    records.append(win_name(FULL, full or f"{family} Regular"))
    return sfnt({b"head": b"\0" * 54, b"name": name_table(records)})


def collection_bytes(fonts: list[dict[bytes, bytes]]) -> bytes:
    header_size = 12 + 4 * len(fonts)
    offsets = []
    pos = header_size
    for tables in fonts:
        offsets.append(pos)
        pos += len(sfnt(tables))
    header = b"ttcf" + struct.pack(">II", 0x00010000, len(fonts))
    header += b"".join(struct.pack(">I", o) for o in offsets)
    return header + b"".join(sfnt(t, base=o) for t, o in zip(fonts, offsets))


def write_font(path: Path, family: str, full: str = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(font_bytes(family, full))
    return path


def build_ttfont(family: str, full: str = None, windows=True, mac=False) -> TTFont:
    fb = FontBuilder(1000, isTTF=True)
    fb.setupGlyphOrder([".notdef"])
    fb.setupCharacterMap({})
    pen = TTGlyphPen(None)
    pen.moveTo((100, 0))
    pen.lineTo((100, 700))
    pen.lineTo((500, 700))
    pen.lineTo((500, 0))
    pen.closePath()
    fb.setupGlyf({".notdef": pen.glyph()})
    fb.setupHorizontalMetrics({".notdef": (600, 100)})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable(
        {
            "familyName": family,
            "styleName": "Regular",
            "fullName": full or f"{family} Regular",
            "psName": family.replace(" ", "") + "-Regular",
        },
        windows=windows,
        mac=mac,
    )
    fb.setupOS2()
    fb.setupPost()
    return fb.font


def ttfont_bytes(font: TTFont) -> bytes:
    buf = io.BytesIO()
    font.save(buf)
    return buf.getvalue()


def ttc_bytes(fonts: list[TTFont]) -> bytes:
    coll = TTCollection()
    coll.fonts = [TTFont(io.BytesIO(ttfont_bytes(f))) for f in fonts]
    buf = io.BytesIO()
    coll.save(buf)
    return buf.getvalue()


ASS_TEMPLATE = """[Script Info]
ScriptType: v4.00+

[V4+ Styles]
Format: Name, Fontname, Fontsize, PrimaryColour, Bold
{styles}

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
{events}
"""


def ass_text(styles=(), events=()) -> str:
    style_lines = "\n".join(f"Style: {name},{font},20,&H00FFFFFF,0" for name, font in styles)
    event_lines = "\n".join(
        f"Dialogue: 0,0:00:00.00,0:00:05.00,Default,,0,0,0,,{text}" for text in events
    )
    return ASS_TEMPLATE.format(styles=style_lines, events=event_lines)


def write_ass(path: Path, styles=(), events=()) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ass_text(styles, events), encoding="utf-8")
    return path


class FakeActivator(FontActivator):
    """Counts activations per path like the OS does for font resources."""

    def __init__(self, fail=()):
        self.fail = {str(p) for p in fail}
        self.active = Counter()
        self.activate_calls = []
        self.deactivate_calls = []
        self.broadcasts = 0

    def activate(self, path):
        self.activate_calls.append(str(path))
        if str(path) in self.fail:
            return False
        self.active[str(path)] += 1
        return True

    def deactivate(self, path):
        self.deactivate_calls.append(str(path))
        if self.active[str(path)] > 0:
            self.active[str(path)] -= 1
            return True
        return False

    def broadcast(self):
        self.broadcasts += 1
