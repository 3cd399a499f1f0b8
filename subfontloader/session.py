import logging
from pathlib import Path
from typing import Iterable, Optional

from subfontloader import loader
from subfontloader.activation import FontActivator, get_activator
from subfontloader.config import MODE_NORMAL, MODES
from subfontloader.registry import LoadedFontRegistry, RegistryLockError
from subfontloader.scheduler import (
    OP_FORCE_CLEAN,
    OP_PROCESS,
    OP_UNLOAD,
    OperationReport,
    OperationScheduler,
)

logger = logging.getLogger(__name__)

MSG_BUSY = "[i] Busy, please wait"
MSG_NOTHING_PENDING = "[i] Nothing pending"


class FontLoaderSession:
    """Interactive front end state: pending paths, mode, log and the one
    background operation allowed at a time.

    The registry is shared with :meth:`close`, which may run from a different
    thread than the operations.
    """

    def __init__(
        self,
        registry: Optional[LoadedFontRegistry] = None,
        activator: Optional[FontActivator] = None,
        mode: str = MODE_NORMAL,
        cache_path: Optional[Path] = None,
        processes: Optional[int] = None,
    ):
        self.registry = registry if registry is not None else LoadedFontRegistry()
        self.activator = activator if activator is not None else get_activator()
        self.scheduler = OperationScheduler()
        self.mode = mode
        self.cache_path = cache_path
        self.processes = processes
        self.pending_paths: list[str] = []
        self.logs: list[str] = []
        self.last_report: Optional[OperationReport] = None

    @property
    def mode(self) -> str:
        return self._mode

    @mode.setter
    def mode(self, value: str):
        if value not in MODES:
            raise ValueError(f"Unknown mode: {value}")
        self._mode = value

    @property
    def use_cache(self) -> bool:
        return self._mode == MODE_NORMAL

    @property
    def busy(self) -> bool:
        return self.scheduler.busy

    def loaded_count(self) -> Optional[int]:
        """Number of registered fonts, None once the registry is unusable."""
        try:
            return len(self.registry)
        except RegistryLockError:
            return None

    def enqueue(self, paths: Iterable[str | Path]) -> int:
        added = 0
        for path in paths:
            path_str = str(path)
            if path_str and path_str not in self.pending_paths:
                self.pending_paths.append(path_str)
                added += 1
        if added:
            self.logs.append(f"[i] Queued: {added}")
        return added

    def _reject_if_busy(self) -> bool:
        if self.busy:
            self.logs.append(MSG_BUSY)
            return True
        return False

    def load_pending(self) -> bool:
        if self._reject_if_busy():
            return False
        if not self.pending_paths:
            self.logs.append(MSG_NOTHING_PENDING)
            return False
        paths, self.pending_paths = self.pending_paths, []
        self.scheduler.submit(
            OP_PROCESS,
            loader.process_batch,
            paths,
            self.registry,
            self.activator,
            self.use_cache,
            self.cache_path,
            self.processes,
        )
        return True

    def unload_all(self) -> bool:
        if self._reject_if_busy():
            return False
        self.scheduler.submit(OP_UNLOAD, loader.unload_all, self.registry, self.activator)
        return True

    def force_clean(self, folder: str | Path) -> bool:
        if self._reject_if_busy():
            return False
        self.logs.append(f"[i] Force cleaning directory: {folder}")
        self.scheduler.submit(OP_FORCE_CLEAN, loader.force_clean, folder, self.activator)
        return True

    def poll(self) -> Optional[OperationReport]:
        """Collects a finished operation, if any, into the log."""
        report = self.scheduler.poll()
        if report is not None:
            self._record(report)
        return report

    def wait(self, timeout: Optional[float] = None) -> Optional[OperationReport]:
        report = self.scheduler.wait(timeout)
        if report is not None:
            self._record(report)
        return report

    def _record(self, report: OperationReport):
        self.last_report = report
        if not report.ok:
            self.logs.append(f"[X] {report.error}")
            return
        if report.operation == OP_PROCESS:
            self.logs.extend(report.result.logs)
            self.logs.append(report.result.summary())
        elif report.operation == OP_UNLOAD:
            self.logs.append(f"Unload finished: {report.result.count}")
        elif report.operation == OP_FORCE_CLEAN:
            self.logs.append(
                f"Force clean finished, released {report.result.count} font reference(s)"
            )

    def close(self) -> int:
        """Waits for a running operation, then unloads everything registered."""
        self.scheduler.shutdown(wait=True)
        return loader.shutdown_sweep(self.registry, self.activator)
