import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as futures_wait
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

OP_PROCESS = "process"
OP_UNLOAD = "unload"
OP_FORCE_CLEAN = "force_clean"


@dataclass(frozen=True)
class OperationReport:
    """Terminal message of one background operation."""

    operation: str
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _run_operation(operation: str, fn: Callable, args: tuple) -> OperationReport:
    try:
        return OperationReport(operation, result=fn(*args))
    except Exception as e:
        logger.exception("Operation %s failed", operation)
        return OperationReport(operation, error=str(e) or type(e).__name__)


class OperationTask:
    """One submitted operation with a single consumable result slot."""

    def __init__(self, operation: str, future: Future):
        self.operation = operation
        self._future = future
        self._taken = False

    def has_result(self) -> bool:
        return not self._taken and self._future.done()

    def take(self) -> Optional[OperationReport]:
        """The report once, if finished; None before that and afterwards."""
        if not self.has_result():
            return None
        self._taken = True
        return self._future.result()

    def wait(self, timeout: Optional[float] = None) -> Optional[OperationReport]:
        """Blocks until finished; None on timeout or once already taken."""
        if self._taken:
            return None
        futures_wait([self._future], timeout=timeout)
        return self.take()

    @property
    def consumed(self) -> bool:
        return self._taken


class OperationScheduler:
    """Runs at most one operation at a time on a background thread.

    An operation stays outstanding until its report has been taken, so the
    caller cannot start a new one before it has seen the previous result.
    """

    def __init__(self):
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="subfontloader-op"
        )
        self._task: Optional[OperationTask] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.consumed

    @property
    def current(self) -> Optional[OperationTask]:
        return self._task if self.busy else None

    def submit(self, operation: str, fn: Callable, *args) -> Optional[OperationTask]:
        if self.busy:
            logger.info("Rejected %s: %s still running", operation, self._task.operation)
            return None
        future = self._executor.submit(_run_operation, operation, fn, args)
        self._task = OperationTask(operation, future)
        logger.debug("Started %s", operation)
        return self._task

    def poll(self) -> Optional[OperationReport]:
        """Non-blocking: the finished operation's report, at most once."""
        if self._task is None:
            return None
        report = self._task.take()
        if report is not None:
            self._task = None
        return report

    def wait(self, timeout: Optional[float] = None) -> Optional[OperationReport]:
        if self._task is None:
            return None
        report = self._task.wait(timeout)
        # still outstanding after a timeout
        if self._task.consumed:
            self._task = None
        return report

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
