"""Background startup sequence with an explicit join point."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from concurrent.futures import Future

from aicos_desktop.models import StartOutcome, StartupReport
from aicos_desktop.supervisor.core import ServerSupervisor
from aicos_desktop.supervisor.errors import SupervisorError
from aicos_desktop.supervisor.logging import DesktopLogComponent, get_logger

logger = get_logger(DesktopLogComponent.SUPERVISOR)

_OUTCOME_MESSAGES: dict[StartOutcome, str] = {
    StartOutcome.STARTED: "Server started",
    StartOutcome.ALREADY_RUNNING_EXTERNALLY: "Using existing server",
    StartOutcome.ALREADY_OWNED: "Server already running",
}


class NavigationGate:
    """One-shot flag: the first `open()` wins, every later call is refused."""

    def __init__(self) -> None:
        self._lock: threading.Lock = threading.Lock()
        self._opened: bool = False

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._opened

    def open(self) -> bool:
        with self._lock:
            if self._opened:
                return False
            self._opened = True
            return True


async def run_startup(supervisor: ServerSupervisor, port: int) -> StartupReport:
    """Run `supervisor.start(port)` and turn the outcome or failure into a report."""
    url = supervisor.server_url(port)
    try:
        outcome = await supervisor.start(port)
    except SupervisorError as e:
        logger.error(f"Failed to start server: {e}")
        return StartupReport(status="error", url=url, message=str(e))
    return StartupReport(
        status="success", url=url, outcome=outcome, message=_OUTCOME_MESSAGES[outcome]
    )


class StartupTask:
    """Runs the startup sequence on a worker thread with its own event loop.

    Done callbacks run on the worker thread before `result()` unblocks, so a
    caller joining on the task sees their effects.
    """

    def __init__(self, supervisor: ServerSupervisor, port: int):
        self.supervisor: ServerSupervisor = supervisor
        self.port: int = port
        self._future: Future[StartupReport] = Future()
        self._callbacks: list[Callable[[StartupReport], None]] = []
        self._report: StartupReport | None = None
        self._lock: threading.Lock = threading.Lock()
        self._thread: threading.Thread = threading.Thread(
            target=self._run, name="aicos-server-startup", daemon=True
        )

    def start(self) -> StartupTask:
        self._thread.start()
        return self

    def _run(self) -> None:
        if not self._future.set_running_or_notify_cancel():
            return
        try:
            report = asyncio.run(run_startup(self.supervisor, self.port))
        except Exception as e:
            # Anything outside the supervisor's taxonomy still ends up in a report.
            logger.exception("Startup task crashed")
            report = StartupReport(
                status="error",
                url=self.supervisor.server_url(self.port),
                message=f"Unexpected startup failure: {e}",
            )

        with self._lock:
            self._report = report
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for fn in callbacks:
            self._invoke(fn, report)
        self._future.set_result(report)

    @staticmethod
    def _invoke(fn: Callable[[StartupReport], None], report: StartupReport) -> None:
        try:
            fn(report)
        except Exception:
            logger.exception("Startup callback failed")

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> StartupReport:
        """Block until the startup sequence finishes and return its report."""
        return self._future.result(timeout=timeout)

    def add_done_callback(self, fn: Callable[[StartupReport], None]) -> None:
        """Call `fn(report)` once the sequence finishes (immediately if it already has)."""
        with self._lock:
            report = self._report
            if report is None:
                self._callbacks.append(fn)
                return
        self._invoke(fn, report)
