import argparse
import logging
import sys
import time
from multiprocessing import freeze_support
from pathlib import Path

from subfontloader.activation import get_activator
from subfontloader.cache import FontCache, build_font_index
from subfontloader.config import MODE_NO_RESIDUE, MODE_NORMAL, AppConfig
from subfontloader.files import classify_files, collect_files
from subfontloader.loader import resolve_batch
from subfontloader.session import FontLoaderSession

logger = logging.getLogger(__name__)


def print_progress(current, total):
    """Text-based progress bar for the console."""
    if total == 0:
        return
    percent = (current / total) * 100
    bar_length = 40
    filled_length = int(bar_length * current // total)
    bar = "█" * filled_length + "-" * (bar_length - filled_length)

    # \r moves the cursor back to the start of the line
    sys.stdout.write(f"\rIndexing: |{bar}| {percent:.1f}% ({current}/{total})")
    sys.stdout.flush()
    if current == total:
        print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="subfontloader",
        description="Load the fonts referenced by ASS/SSA subtitles for this session.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug logging"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(p, cache=True):
        p.add_argument("paths", nargs="+", help="Subtitle/font files or directories.")
        if cache:
            p.add_argument(
                "--cache",
                type=str,
                help="Path to the font name cache. (Default: cache.json next to the program)",
            )
            p.add_argument(
                "--no-residue",
                action="store_true",
                help="Always re-parse font files; do not read or write the cache.",
            )
        p.add_argument(
            "--processes",
            type=int,
            default=None,
            help="Worker processes used to parse font files.",
        )

    p_load = sub.add_parser("load", help="Load fonts until Enter is pressed.")
    add_common(p_load)

    p_check = sub.add_parser("check", help="Show which font file each name resolves to.")
    add_common(p_check)

    p_index = sub.add_parser("index", help="Refresh the font name cache.")
    p_index.add_argument("paths", nargs="+", help="Font files or directories.")
    p_index.add_argument("--cache", type=str, help="Path to the font name cache.")
    p_index.add_argument("--processes", type=int, default=None)

    p_clean = sub.add_parser(
        "clean", help="Remove every activation of the fonts in a directory."
    )
    p_clean.add_argument("folder", type=str, help="Directory to sweep.")

    p_gui = sub.add_parser("gui", help="Open the desktop window.")
    p_gui.add_argument("paths", nargs="*", help="Paths to queue on start.")
    return parser


def _settings(args, config: AppConfig):
    cache = getattr(args, "cache", None)
    cache_path = Path(cache).absolute() if cache else config.get_cache_path()
    use_cache = config.use_cache() and not getattr(args, "no_residue", False)
    processes = args.processes if args.processes is not None else config.get_index_processes()
    return cache_path, use_cache, processes


def cmd_load(args, config: AppConfig) -> int:
    cache_path, use_cache, processes = _settings(args, config)
    session = FontLoaderSession(
        mode=MODE_NORMAL if use_cache else MODE_NO_RESIDUE,
        cache_path=cache_path,
        processes=processes,
    )
    session.enqueue(Path(p).absolute() for p in args.paths)
    session.load_pending()
    report = session.wait()
    for line in session.logs:
        print(line)
    if report is None or not report.ok:
        session.close()
        return 1

    if report.result.loaded:
        print("-" * 30)
        try:
            input("Fonts are loaded. Press Enter to unload and exit...")
        except (KeyboardInterrupt, EOFError):
            print()
    count = session.close()
    print(f"Unloaded {count} font(s).")
    return 0


def cmd_check(args, config: AppConfig) -> int:
    cache_path, use_cache, processes = _settings(args, config)
    resolved = resolve_batch(args.paths, use_cache, cache_path, processes)
    missing = 0
    for name, path in resolved.items():
        if path is None:
            missing += 1
            print(f"[??] {name}")
        else:
            print(f"[ok] {name} > {path}")
    print("-" * 30)
    print(f"{len(resolved)} font name(s), {missing} missing")
    return 1 if missing else 0


def cmd_index(args, config: AppConfig) -> int:
    cache_path, _, processes = _settings(args, config)
    fonts = classify_files(collect_files(args.paths)).fonts

    print("Starting index update...")
    print(f"Font files:      {len(fonts)}")
    print(f"Cache Path:      {cache_path}")
    print("-" * 30)

    start_time = time.time()
    cache = FontCache.load(cache_path)
    index = build_font_index(
        fonts, cache, processes=processes, progress_callback=print_progress
    )
    saved = cache.save()
    elapsed = time.time() - start_time

    print("-" * 30)
    print("Scan Complete!")
    print(f"Time Elapsed:    {elapsed:.2f} seconds")
    print(f"Files Processed: {len(fonts)}")
    print(f"Unique Names:    {len(index)}")
    if not saved:
        print("Warning: the cache could not be written.")
        return 1
    return 0


def cmd_clean(args, config: AppConfig) -> int:
    folder = Path(args.folder).absolute()
    if not folder.is_dir():
        print(f"Error: Path is not a directory: {folder}")
        return 1
    session = FontLoaderSession(activator=get_activator())
    session.force_clean(folder)
    session.wait()
    for line in session.logs:
        print(line)
    session.close()
    return 0 if session.last_report and session.last_report.ok else 1


def cmd_gui(args, config: AppConfig) -> int:
    try:
        from subfontloader.gui import run
    except ImportError as e:
        print(f"The desktop window needs PySide6 (pip install subfontloader[gui]): {e}")
        return 1
    return run([Path(p) for p in args.paths], config)


COMMANDS = {
    "load": cmd_load,
    "check": cmd_check,
    "index": cmd_index,
    "clean": cmd_clean,
    "gui": cmd_gui,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")

    config = AppConfig()
    try:
        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        print("\n\nCancelled by user.")
        return 1


if __name__ == "__main__":
    freeze_support()
    sys.exit(main())
