import os

import pytest

from subfontloader.files import (
    classify_files,
    collect_files,
    decode_text,
    is_ass_file,
    read_text,
    walk_dir,
)


def touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")
    return path


def test_classify_by_extension(tmp_path):
    files = [
        touch(tmp_path / "a.ASS"),
        touch(tmp_path / "b.ssa"),
        touch(tmp_path / "c.srt"),
        touch(tmp_path / "d.sup"),
        touch(tmp_path / "e.TTF"),
        touch(tmp_path / "f.otf"),
        touch(tmp_path / "g.ttc"),
        touch(tmp_path / "h.txt"),
        touch(tmp_path / "noext"),
    ]
    result = classify_files(files)
    assert [p.name for p in result.subtitles] == ["a.ASS", "b.ssa", "c.srt", "d.sup"]
    assert [p.name for p in result.fonts] == ["e.TTF", "f.otf", "g.ttc"]
    assert [p.name for p in result.ignored] == ["h.txt", "noext"]
    assert [p.name for p in result.ass_subtitles] == ["a.ASS", "b.ssa"]
    assert [p.name for p in result.unsupported_subtitles] == ["c.srt", "d.sup"]


def test_is_ass_file_is_case_insensitive(tmp_path):
    assert is_ass_file(tmp_path / "X.SSA")
    assert not is_ass_file(tmp_path / "x.vtt")


def test_collect_walks_directories_recursively_in_sorted_order(tmp_path):
    touch(tmp_path / "root" / "b.ttf")
    touch(tmp_path / "root" / "a.ttf")
    touch(tmp_path / "root" / "sub" / "deeper" / "c.ass")
    single = touch(tmp_path / "single.ssa")

    files = collect_files([tmp_path / "root", single])
    rel = [p.relative_to(tmp_path).as_posix() for p in files]
    assert rel == ["root/a.ttf", "root/b.ttf", "root/sub/deeper/c.ass", "single.ssa"]
    assert all(p.is_absolute() for p in files)


def test_missing_input_contributes_nothing(tmp_path):
    touch(tmp_path / "ok.ttf")
    files = collect_files([tmp_path / "does-not-exist", tmp_path / "ok.ttf"])
    assert [p.name for p in files] == ["ok.ttf"]
    assert walk_dir(tmp_path / "does-not-exist") == []


@pytest.mark.skipif(
    os.name == "nt" or (hasattr(os, "geteuid") and os.geteuid() == 0),
    reason="permission bits are not enforced",
)
def test_unreadable_directory_is_skipped(tmp_path):
    touch(tmp_path / "open" / "a.ttf")
    locked = tmp_path / "locked"
    touch(locked / "hidden.ttf")
    locked.chmod(0)
    try:
        files = collect_files([tmp_path])
    finally:
        locked.chmod(0o755)
    assert [p.name for p in files] == ["a.ttf"]


def test_decode_text_boms_and_fallbacks():
    assert decode_text(b"\xef\xbb\xbf" + "hé".encode("utf-8")) == "hé"
    assert decode_text(b"\xff\xfe" + "hé".encode("utf-16-le")) == "hé"
    assert decode_text(b"\xfe\xff" + "hé".encode("utf-16-be")) == "hé"
    assert decode_text("字幕".encode("gb18030")) == "字幕"
    assert decode_text(b"\xff\xfe\x00") is None


def test_read_text_missing_file(tmp_path):
    assert read_text(tmp_path / "none.ass") is None
