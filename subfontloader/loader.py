"""Matches required font names against font files and tracks what is loaded.

Log lines use the markers ``[ok]`` loaded, ``[xx]`` activation failed,
``[^]`` already loaded, ``[??]`` no matching font file and ``[i]`` for notes.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from subfontloader.activation import FontActivator
from subfontloader.ass import extract_fonts_from_file
from subfontloader.cache import FontCache, FontIndex, build_font_index
from subfontloader.files import (
    ClassifiedFiles,
    classify_files,
    collect_files,
    is_font_file,
    walk_dir,
)
from subfontloader.registry import LoadedFontRegistry, RegistryLockError

logger = logging.getLogger(__name__)

STATUS_LOADED = "loaded"
STATUS_FAILED = "failed"
STATUS_MISSING = "missing"
STATUS_DUPLICATE = "duplicate"


@dataclass(frozen=True)
class FontOutcome:
    name: str
    status: str
    path: Optional[str] = None

    def log_line(self) -> str:
        if self.status == STATUS_MISSING:
            return f"[??] {self.name}"
        marker = {
            STATUS_LOADED: "[ok]",
            STATUS_FAILED: "[xx]",
            STATUS_DUPLICATE: "[^]",
        }[self.status]
        return f"{marker} {self.name} > {self.path}"


@dataclass(frozen=True)
class ProcessResult:
    loaded: int = 0
    failed: int = 0
    missing: int = 0
    duplicates: int = 0
    subs: int = 0
    fonts: int = 0
    outcomes: tuple[FontOutcome, ...] = ()
    logs: tuple[str, ...] = ()

    def summary(self) -> str:
        return (
            f"Done: {self.subs} subtitle(s), {self.fonts} font file(s); "
            f"{self.loaded} loaded, {self.failed} failed, "
            f"{self.missing} missing, {self.duplicates} duplicate"
        )


@dataclass(frozen=True)
class UnloadResult:
    count: int = 0


@dataclass
class Batch:
    """A classified batch with its required names and font index."""

    files: ClassifiedFiles
    required: set[str] = field(default_factory=set)
    index: FontIndex = field(default_factory=FontIndex)

    def ordered_names(self) -> list[str]:
        return sorted(self.required, key=lambda n: (n.lower(), n))


def prepare_batch(
    paths: Iterable[str | Path],
    use_cache: bool = True,
    cache_path: Optional[str | Path] = None,
    processes: Optional[int] = None,
) -> Batch:
    """Classifies paths, extracts required names and indexes the font files."""
    files = classify_files(collect_files(paths))
    batch = Batch(files)
    for sub in files.ass_subtitles:
        batch.required.update(extract_fonts_from_file(sub))

    cache = FontCache.load(cache_path) if use_cache else None
    batch.index = build_font_index(files.fonts, cache, processes=processes)
    if cache is not None:
        cache.save()
    logger.debug(
        "Batch: %d required name(s), %d indexed name(s)",
        len(batch.required),
        len(batch.index),
    )
    return batch


def resolve_batch(
    paths: Iterable[str | Path],
    use_cache: bool = True,
    cache_path: Optional[str | Path] = None,
    processes: Optional[int] = None,
) -> dict[str, Optional[Path]]:
    """Dry run: the winning candidate for every required name, or None."""
    batch = prepare_batch(paths, use_cache, cache_path, processes)
    return {name: batch.index.first(name) for name in batch.ordered_names()}


def process_batch(
    paths: Iterable[str | Path],
    registry: LoadedFontRegistry,
    activator: FontActivator,
    use_cache: bool = True,
    cache_path: Optional[str | Path] = None,
    processes: Optional[int] = None,
) -> ProcessResult:
    batch = prepare_batch(paths, use_cache, cache_path, processes)
    logs = [
        f"[i] Skipped unsupported subtitle: {sub}"
        for sub in batch.files.unsupported_subtitles
    ]
    outcomes = []

    with registry.locked() as loaded:
        for name in batch.ordered_names():
            path = batch.index.first(name)
            if path is None:
                outcomes.append(FontOutcome(name, STATUS_MISSING))
                continue
            path_str = str(path)
            if path_str in loaded:
                status = STATUS_DUPLICATE
            elif activator.activate(path):
                loaded.add(path_str)
                status = STATUS_LOADED
            else:
                status = STATUS_FAILED
            outcomes.append(FontOutcome(name, status, path_str))

    counts = dict.fromkeys(
        (STATUS_LOADED, STATUS_FAILED, STATUS_MISSING, STATUS_DUPLICATE), 0
    )
    for outcome in outcomes:
        counts[outcome.status] += 1
        logs.append(outcome.log_line())
    if counts[STATUS_LOADED]:
        activator.broadcast()

    result = ProcessResult(
        loaded=counts[STATUS_LOADED],
        failed=counts[STATUS_FAILED],
        missing=counts[STATUS_MISSING],
        duplicates=counts[STATUS_DUPLICATE],
        subs=len(batch.files.subtitles),
        fonts=len(batch.files.fonts),
        outcomes=tuple(outcomes),
        logs=tuple(logs),
    )
    logger.info(result.summary())
    return result


def _deactivate_registered(
    loaded: set[str], activator: FontActivator
) -> int:
    removed = []
    for path_str in sorted(loaded):
        if activator.deactivate(Path(path_str)):
            removed.append(path_str)
        else:
            logger.error("Failed to unload font: %s", path_str)
    loaded.difference_update(removed)
    return len(removed)


def unload_all(registry: LoadedFontRegistry, activator: FontActivator) -> UnloadResult:
    """Deactivates every registered font; keeps the ones that fail registered."""
    with registry.locked() as loaded:
        count = _deactivate_registered(loaded, activator)
    if count:
        activator.broadcast()
    logger.info("Unloaded %d font(s)", count)
    return UnloadResult(count)


def force_clean(folder: str | Path, activator: FontActivator) -> UnloadResult:
    """Removes every activation of the font files under folder.

    Each file is deactivated until the call fails, which also drops
    activations this process never made.
    """
    count = 0
    for path in walk_dir(Path(folder)):
        if not is_font_file(path):
            continue
        while activator.deactivate(path):
            count += 1
    if count:
        activator.broadcast()
    logger.info("Force clean of %s released %d font reference(s)", folder, count)
    return UnloadResult(count)


def shutdown_sweep(registry: LoadedFontRegistry, activator: FontActivator) -> int:
    """Best-effort unload of everything still registered, for process exit."""
    logger.debug("Starting cleanup...")
    try:
        with registry.locked(timeout=5) as loaded:
            count = _deactivate_registered(loaded, activator)
    except RegistryLockError as e:
        logger.error("Cleanup skipped: %s", e)
        return 0
    if count:
        activator.broadcast()
    logger.debug("Cleanup complete.")
    return count
