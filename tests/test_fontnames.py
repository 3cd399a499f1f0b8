import struct

from helpers import (
    FAMILY,
    FULL,
    build_ttfont,
    collection_bytes,
    font_bytes,
    mac_name,
    name_table,
    sfnt,
    ttc_bytes,
    ttfont_bytes,
    win_name,
)

from subfontloader.fontnames import (
    font_key,
    normalize_font_name,
    read_font_file_names,
    read_font_names,
)


def test_normalize_strips_whitespace_nul_and_vertical_flag():
    assert normalize_font_name("  Arial \x00") == "Arial"
    assert normalize_font_name("A\x00rial") == "Arial"
    assert normalize_font_name("@MS Gothic") == "MS Gothic"
    assert normalize_font_name("\x00@ Meiryo ") == "Meiryo"


def test_normalize_empty_is_none():
    assert normalize_font_name("") is None
    assert normalize_font_name("  \x00 ") is None
    assert normalize_font_name("@") is None


def test_normalize_is_idempotent():
    for raw in [
        "Arial",
        "  @MS Mincho\x00",
        "Comic Sans MS",
        "\x00Verdana  ",
        "思源黑体",
        "@@Gothic",
        "@ @Gothic",
    ]:
        once = normalize_font_name(raw)
        assert normalize_font_name(once) == once


def test_normalize_strips_repeated_vertical_flags():
    assert normalize_font_name("@@Gothic") == "Gothic"
    assert normalize_font_name("@ @Gothic") == "Gothic"
    assert normalize_font_name("@@") is None


def test_normalize_keeps_case_and_key_lowercases():
    assert normalize_font_name("ARIAL") == "ARIAL"
    assert font_key("ARIAL") == font_key("Arial") == "arial"


def test_single_font_family_and_full_name():
    names = read_font_names(font_bytes("Verdana", "Verdana Regular"))
    assert names == {"Verdana", "Verdana Regular"}


def test_only_windows_family_and_full_records_are_used():
    records = [
        win_name(FAMILY, "Kept"),
        win_name(2, "Bold"),
        win_name(6, "Kept-PS"),
        mac_name(FAMILY, "MacOnly"),
        mac_name(FULL, "MacOnly Full"),
    ]
    names = read_font_names(sfnt({b"name": name_table(records)}))
    assert names == {"Kept"}


def test_repeated_records_are_deduplicated():
    records = [
        win_name(FAMILY, "Repeat"),
        (3, 1, 0x0411, FAMILY, "Repeat".encode("utf-16-be")),
        win_name(FULL, "Repeat"),
    ]
    assert read_font_names(sfnt({b"name": name_table(records)})) == {"Repeat"}


def test_vertical_and_padded_names_are_normalized():
    records = [win_name(FAMILY, "@Vertical\x00"), win_name(FULL, "   ")]
    assert read_font_names(sfnt({b"name": name_table(records)})) == {"Vertical"}


def test_missing_name_table_yields_empty_set():
    data = sfnt({b"head": b"\0" * 54, b"cmap": b"\0" * 8})
    assert read_font_names(data) == set()


def test_garbage_and_truncated_input_never_raise():
    data = font_bytes("Truncated")
    assert read_font_names(b"") == set()
    assert read_font_names(b"\x00\x01") == set()
    assert read_font_names(b"ttcf") == set()
    assert read_font_names(b"\xff" * 64) == set()
    for cut in range(0, len(data), 7):
        assert isinstance(read_font_names(data[:cut]), set)


def test_name_table_offset_out_of_range():
    data = bytearray(font_bytes("Nowhere"))
    # second table record is "name"; point it past the end of the buffer
    struct.pack_into(">I", data, 12 + 16 + 8, len(data) + 100)
    assert read_font_names(bytes(data)) == set()


def test_out_of_range_string_skips_only_that_record():
    table = bytearray(name_table([win_name(FAMILY, "Good"), win_name(FULL, "Bad")]))
    # offset field of the second record
    struct.pack_into(">H", table, 6 + 12 + 10, 0xFFF0)
    assert read_font_names(sfnt({b"name": bytes(table)})) == {"Good"}


def test_record_count_larger_than_table():
    table = bytearray(name_table([win_name(FAMILY, "Counted")]))
    struct.pack_into(">H", table, 2, 500)
    # the string storage now overlaps the bogus records; reading must not fail
    assert isinstance(read_font_names(sfnt({b"name": bytes(table)})), set)


def test_odd_length_and_invalid_utf16_are_tolerated():
    odd = (3, 1, 0x0409, FAMILY, "Odd".encode("utf-16-be") + b"\x00")
    lone_surrogate = (3, 1, 0x0409, FULL, b"\xd8\x00\x00A")
    names = read_font_names(sfnt({b"name": name_table([odd, lone_surrogate])}))
    assert "Odd" in names
    assert len(names) == 2


def test_collection_reads_every_font():
    data = collection_bytes(
        [
            {b"name": name_table([win_name(FAMILY, "First")])},
            {b"name": name_table([win_name(FAMILY, "Second")])},
        ]
    )
    assert read_font_names(data) == {"First", "Second"}


def test_collection_header_larger_than_file():
    data = bytearray(
        collection_bytes([{b"name": name_table([win_name(FAMILY, "Only")])}])
    )
    # the offset table no longer fits, so the header itself is unreadable
    struct.pack_into(">I", data, 8, 0xFFFFFFFF)
    assert read_font_names(bytes(data)) == set()


def test_damaged_collection_member_skips_only_that_member():
    data = bytearray(
        collection_bytes(
            [
                {b"name": name_table([win_name(FAMILY, "First")])},
                {b"name": name_table([win_name(FAMILY, "Second")])},
            ]
        )
    )
    # offset of the second member points past the end of the file
    struct.pack_into(">I", data, 16, len(data) + 100)
    assert read_font_names(bytes(data)) == {"First"}


def test_empty_collection():
    data = b"ttcf" + struct.pack(">II", 0x00010000, 0)
    assert read_font_names(data) == set()


def test_fonttools_built_font():
    data = ttfont_bytes(build_ttfont("Test Sans", "Test Sans Regular", mac=True))
    assert read_font_names(data) == {"Test Sans", "Test Sans Regular"}


def test_fonttools_mac_only_names_are_invisible():
    data = ttfont_bytes(build_ttfont("Mac Sans", windows=False, mac=True))
    assert read_font_names(data) == set()


def test_fonttools_collection():
    data = ttc_bytes([build_ttfont("Coll One"), build_ttfont("Coll Two")])
    assert data[:4] == b"ttcf"
    names = read_font_names(data)
    assert {"Coll One", "Coll Two", "Coll One Regular", "Coll Two Regular"} <= names


def test_read_font_file_names(tmp_path):
    path = tmp_path / "a.ttf"
    path.write_bytes(font_bytes("On Disk"))
    assert read_font_file_names(path) == {"On Disk", "On Disk Regular"}
    assert read_font_file_names(tmp_path / "missing.ttf") == set()
