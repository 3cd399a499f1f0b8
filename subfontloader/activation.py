import ctypes
import logging
import platform
import shutil
import subprocess
from pathlib import Path
from typing import Optional

import imohash

logger = logging.getLogger(__name__)

HWND_BROADCAST = 0xFFFF
WM_FONTCHANGE = 0x001D
SMTO_ABORTIFHUNG = 0x0002
BROADCAST_TIMEOUT_MS = 1000


class FontActivator:
    """Registers font files with the host text stack for this session.

    ``deactivate`` on a path that is not active must return False; the
    force-clean sweep relies on it to stop.
    """

    def activate(self, path: Path) -> bool:
        raise NotImplementedError

    def deactivate(self, path: Path) -> bool:
        raise NotImplementedError

    def broadcast(self):
        """Tells other processes that the set of fonts changed."""


class NullFontActivator(FontActivator):
    def __init__(self, system: str = ""):
        self.system = system

    def activate(self, path: Path) -> bool:
        logger.error("Unsupported OS: %s", self.system)
        return False

    def deactivate(self, path: Path) -> bool:
        return False


class WindowsFontActivator(FontActivator):
    """Private font resources via gdi32 AddFontResourceW/RemoveFontResourceW."""

    def __init__(self):
        gdi32 = ctypes.WinDLL("gdi32")
        self._add_font_resource_w = gdi32.AddFontResourceW
        self._add_font_resource_w.argtypes = [ctypes.c_wchar_p]
        self._add_font_resource_w.restype = ctypes.c_int
        self._remove_font_resource_w = gdi32.RemoveFontResourceW
        self._remove_font_resource_w.argtypes = [ctypes.c_wchar_p]
        self._remove_font_resource_w.restype = ctypes.c_int

    def activate(self, path: Path) -> bool:
        try:
            result = self._add_font_resource_w(str(path))
        except OSError as e:
            logger.error("Windows loading error: %s", e)
            return False
        if result > 0:
            logger.info("Windows: Loaded font %s", path.name)
            return True
        return False

    def deactivate(self, path: Path) -> bool:
        try:
            return self._remove_font_resource_w(str(path)) != 0
        except OSError as e:
            logger.error("Windows unloading error: %s", e)
            return False

    def broadcast(self):
        user32 = ctypes.WinDLL("user32")
        result = ctypes.c_ulong(0)
        user32.SendMessageTimeoutW(
            HWND_BROADCAST,
            WM_FONTCHANGE,
            0,
            0,
            SMTO_ABORTIFHUNG,
            BROADCAST_TIMEOUT_MS,
            ctypes.byref(result),
        )


class UserFontDirActivator(FontActivator):
    """Installs fonts into the per-user font directory (macOS, Linux).

    Only copies made by this activator count as active. A font that was
    already in the directory belongs to the user: activating it reports
    failure and deactivating never removes it.
    """

    def __init__(self, fonts_dir: Path, system: str = "Linux"):
        self.fonts_dir = Path(fonts_dir)
        self.system = system
        self._installed: set[Path] = set()

    @classmethod
    def for_system(cls, system: str) -> Optional["UserFontDirActivator"]:
        home_dir = Path.home()
        if system == "Darwin":
            return cls(home_dir / "Library" / "Fonts", system)
        if system == "Linux":
            return cls(home_dir / ".local" / "share" / "fonts", system)
        return None

    def destination(self, path: Path) -> Path:
        return self.fonts_dir / path.name

    def _same_file(self, source: Path, dest: Path) -> bool:
        try:
            return imohash.hashfile(source, hexdigest=True) == imohash.hashfile(
                dest, hexdigest=True
            )
        except OSError as e:
            logger.debug("Hashing failed for %s / %s: %s", source, dest, e)
            return False

    def activate(self, path: Path) -> bool:
        dest_path = self.destination(path)
        try:
            self.fonts_dir.mkdir(parents=True, exist_ok=True)
            if dest_path.exists():
                if not self._same_file(path, dest_path):
                    logger.error("A different font already exists at %s", dest_path)
                    return False
                if dest_path in self._installed:
                    return True
                logger.info("Font already installed by the user, leaving it: %s", dest_path)
                return False
            shutil.copy(path, dest_path)
        except OSError as e:
            logger.error("Unix loading error: %s", e)
            return False
        self._installed.add(dest_path)
        logger.info("Installed font to %s", dest_path)
        return True

    def deactivate(self, path: Path) -> bool:
        dest_path = self.destination(path)
        if dest_path not in self._installed:
            return False
        if not dest_path.exists() or not self._same_file(path, dest_path):
            # removed or replaced behind our back
            self._installed.discard(dest_path)
            return False
        try:
            dest_path.unlink()
        except OSError as e:
            logger.error("Error removing font %s: %s", dest_path, e)
            return False
        self._installed.discard(dest_path)
        logger.info("Removed font %s", dest_path)
        return True

    def broadcast(self):
        if self.system != "Linux":
            return
        try:
            subprocess.run(["fc-cache", "-f"], check=True, capture_output=True)
            logger.info("Linux font cache refreshed.")
        except (OSError, subprocess.CalledProcessError) as e:
            logger.error("Error refreshing Linux font cache: %s", e)


def get_activator(system: Optional[str] = None) -> FontActivator:
    system = system or platform.system()
    if system == "Windows":
        return WindowsFontActivator()
    activator = UserFontDirActivator.for_system(system)
    if activator is None:
        logger.warning("No font activation backend for %s", system)
        return NullFontActivator(system)
    if system == "Linux" and not shutil.which("fc-cache"):
        logger.debug("fc-cache not found, font cache will not be refreshed")
    return activator
