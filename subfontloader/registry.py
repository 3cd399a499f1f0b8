import contextlib
import logging
import threading
from typing import Iterator

logger = logging.getLogger(__name__)


class SubFontLoaderError(Exception):
    """Base class for errors raised by subfontloader."""


class RegistryLockError(SubFontLoaderError):
    """The loaded-font registry could not be locked or is in an unknown state."""


class LoadedFontRegistry:
    """Paths of the font files this process has activated.

    All access goes through :meth:`locked`. If an exception escapes a locked
    block the registry is marked poisoned: its contents may no longer match
    what the OS has loaded, so every later attempt to lock it fails with
    :class:`RegistryLockError`.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._paths: set[str] = set()
        self._poisoned = False

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    @contextlib.contextmanager
    def locked(self, timeout: float = -1) -> Iterator[set[str]]:
        if not self._lock.acquire(timeout=timeout):
            raise RegistryLockError("Timed out waiting for the font registry lock")
        try:
            if self._poisoned:
                raise RegistryLockError(
                    "Font registry is in an unknown state after an earlier failure"
                )
            try:
                yield self._paths
            except BaseException:
                self._poisoned = True
                logger.error("Font registry poisoned by a failed operation")
                raise
        finally:
            self._lock.release()

    def snapshot(self) -> frozenset[str]:
        with self.locked() as paths:
            return frozenset(paths)

    def __contains__(self, path: str) -> bool:
        with self.locked() as paths:
            return path in paths

    def __len__(self) -> int:
        with self.locked() as paths:
            return len(paths)
