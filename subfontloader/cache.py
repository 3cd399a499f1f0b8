import json
import logging
import os
import sys
from dataclasses import dataclass
from multiprocessing import Pool
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from subfontloader.fontnames import font_key, normalize_font_name, read_font_file_names

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "cache.json"

ProgressCallback = Callable[[int, int], None]


def default_cache_path() -> Path:
    """cache.json next to the running program."""
    if getattr(sys, "frozen", False) or "__compiled__" in globals():
        program = Path(sys.executable)
    else:
        program = Path(sys.argv[0]) if sys.argv and sys.argv[0] else Path.cwd() / "_"
    return program.absolute().parent / CACHE_FILE_NAME


def file_mtime(path: Path) -> Optional[int]:
    """Modification time in whole seconds, None if the file cannot be stat'ed."""
    try:
        return int(path.stat().st_mtime)
    except OSError:
        return None


@dataclass
class CacheEntry:
    modified: int
    names: list[str]

    def to_json(self) -> dict[str, Any]:
        return {"modified": self.modified, "names": self.names}

    @classmethod
    def from_json(cls, raw: Any) -> Optional["CacheEntry"]:
        if not isinstance(raw, dict):
            return None
        modified = raw.get("modified")
        names = raw.get("names")
        if not isinstance(modified, int) or not isinstance(names, list):
            return None
        return cls(modified, [n for n in names if isinstance(n, str)])


class FontCache:
    """Per-file font names keyed by absolute path, trusted only while mtime matches."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self.entries: dict[str, CacheEntry] = {}

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> "FontCache":
        cache = cls(Path(path) if path else default_cache_path())
        try:
            with cache.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.debug(f"No cache file at {cache.path}")
            return cache
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable font cache %s: %s", cache.path, e)
            return cache

        entries = data.get("entries") if isinstance(data, dict) else None
        if not isinstance(entries, dict):
            logger.warning("Ignoring malformed font cache %s", cache.path)
            return cache
        for key, raw in entries.items():
            entry = CacheEntry.from_json(raw)
            if entry is not None:
                cache.entries[key] = entry
        logger.debug("Loaded %d cache entries from %s", len(cache.entries), cache.path)
        return cache

    def lookup(self, path: Path, mtime: Optional[int]) -> Optional[list[str]]:
        entry = self.entries.get(str(path))
        if entry is None or mtime is None or entry.modified != mtime:
            return None
        return entry.names

    def store(self, path: Path, mtime: Optional[int], names: Iterable[str]):
        self.entries[str(path)] = CacheEntry(mtime or 0, sorted(names))

    def __len__(self) -> int:
        return len(self.entries)

    def save(self) -> bool:
        """Writes the whole cache; failures are logged, not raised."""
        if self.path is None:
            return False
        payload = {
            "entries": {k: v.to_json() for k, v in sorted(self.entries.items())}
        }
        temp_path = self.path.parent / f".{self.path.name}.tmp"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(temp_path, self.path)
        except OSError as e:
            logger.warning("Failed to save font cache %s: %s", self.path, e)
            if temp_path.exists():
                temp_path.unlink()
            return False
        logger.debug("Saved %d cache entries to %s", len(self.entries), self.path)
        return True


class FontIndex:
    """Case-insensitive font name -> candidate files, in discovery order."""

    def __init__(self):
        self._entries: dict[str, list[Path]] = {}

    def add(self, name: str, path: Path):
        normalized = normalize_font_name(name)
        if not normalized:
            return
        candidates = self._entries.setdefault(font_key(normalized), [])
        if path not in candidates:
            candidates.append(path)

    def candidates(self, name: str) -> list[Path]:
        normalized = normalize_font_name(name)
        if not normalized:
            return []
        return list(self._entries.get(font_key(normalized), []))

    def first(self, name: str) -> Optional[Path]:
        candidates = self.candidates(name)
        return candidates[0] if candidates else None

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: str) -> bool:
        return bool(self.candidates(name))

    def __len__(self) -> int:
        return len(self._entries)


def _worker_read_names(path: Path) -> list[str]:
    return sorted(read_font_file_names(path))


def _parse_fonts(
    paths: list[Path], processes: Optional[int]
) -> Iterable[list[str]]:
    if processes and processes > 1 and len(paths) > 1:
        with Pool(processes=min(processes, len(paths))) as pool:
            # imap keeps input order
            yield from pool.imap(_worker_read_names, paths, chunksize=10)
    else:
        for path in paths:
            yield _worker_read_names(path)


def build_font_index(
    font_files: list[Path],
    cache: Optional[FontCache] = None,
    processes: Optional[int] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> FontIndex:
    """Builds the name index for font_files.

    With a cache, files whose mtime still matches their entry are not parsed
    again; every parsed file overwrites its entry. Without one the cache is
    neither read nor written.
    """
    total = len(font_files)
    names_by_file: list[Optional[list[str]]] = [None] * total
    mtimes: list[Optional[int]] = [None] * total
    to_parse = []
    done = 0

    for i, path in enumerate(font_files):
        if cache is None:
            to_parse.append(i)
            continue
        mtimes[i] = file_mtime(path)
        cached = cache.lookup(path, mtimes[i])
        if cached is None:
            to_parse.append(i)
        else:
            names_by_file[i] = cached
            done += 1
    if progress_callback:
        progress_callback(done, total)

    logger.debug(
        "Font index: %d file(s), %d from cache, %d to parse",
        total,
        total - len(to_parse),
        len(to_parse),
    )
    parsed = _parse_fonts([font_files[i] for i in to_parse], processes)
    for names, i in zip(parsed, to_parse):
        names_by_file[i] = names
        if cache is not None:
            cache.store(font_files[i], mtimes[i], names)
        done += 1
        if progress_callback:
            progress_callback(done, total)

    index = FontIndex()
    for path, names in zip(font_files, names_by_file):
        for name in names or []:
            index.add(name, path)
    return index
