"""Glue between a desktop window and the server supervisor."""

from __future__ import annotations

import atexit
import json
from typing import Protocol

from aicos_desktop.models import StartupReport
from aicos_desktop.supervisor.core import ServerSupervisor
from aicos_desktop.supervisor.errors import RuntimeNotFoundError, StopError, SupervisorError
from aicos_desktop.supervisor.logging import DesktopLogComponent, get_logger
from aicos_desktop.supervisor.process_control import check_runtime_installed
from aicos_desktop.supervisor.startup import NavigationGate, StartupTask

logger = get_logger(DesktopLogComponent.SHELL)

RUNTIME_MISSING_TITLE = "Node.js not installed"
START_FAILED_TITLE = "Server failed to start"


class Window(Protocol):
    """The parts of a window the shell drives."""

    def load_url(self, url: str) -> None: ...

    def evaluate_js(self, script: str) -> object: ...

    def show_error(self, title: str, message: str) -> None: ...


class DesktopShell:
    """Starts the server when the window opens and stops it when the window closes."""

    def __init__(
        self,
        supervisor: ServerSupervisor,
        window: Window,
        port: int,
        *,
        dev_url: str | None = None,
        check_runtime: bool = True,
    ):
        """Initialize the shell.

        Args:
            supervisor: Supervisor owning the server process
            window: Window to navigate once the server is ready
            port: Port resolved from the user's config
            dev_url: When set, navigate here and leave the server alone (dev mode)
            check_runtime: Verify the runtime runs before starting the server
        """
        self.supervisor: ServerSupervisor = supervisor
        self.window: Window = window
        self.port: int = port
        self.dev_url: str | None = dev_url
        self.check_runtime: bool = check_runtime
        self.navigation: NavigationGate = NavigationGate()
        self.task: StartupTask | None = None
        self._exit_hook_registered: bool = False

    @property
    def dev_mode(self) -> bool:
        return self.dev_url is not None

    def navigate(self, url: str) -> bool:
        """Point the window at `url` once per run. Returns False if already navigated."""
        if not self.navigation.open():
            logger.debug(f"Navigation to {url} skipped, window already navigated")
            return False
        try:
            if self.supervisor.options.use_navigate_api:
                self.window.load_url(url)
            else:
                self.window.evaluate_js(f"window.location.href = {json.dumps(url)}")
        except Exception as e:
            logger.error(f"Failed to load server URL {url}: {e}")
            return False
        logger.info(f"Navigated to {url}")
        return True

    def report_error(self, title: str, message: str) -> None:
        logger.error(f"{title}: {message}")
        if not self.supervisor.options.show_error_dialog:
            return
        try:
            self.window.show_error(title, message)
        except Exception as e:
            logger.error(f"Failed to show error dialog: {e}")

    def handle_report(self, report: StartupReport) -> None:
        if report.ok:
            logger.info(f"{report.message} at {report.url}")
            self.navigate(report.url)
        else:
            self.report_error(START_FAILED_TITLE, report.message or "Unknown error")

    def launch(self) -> StartupTask | None:
        """Kick off the startup sequence. Returns the task, or None if nothing was started."""
        if self.dev_url is not None:
            logger.info(f"Running in dev mode - using {self.dev_url}")
            self.navigate(self.dev_url)
            return None

        if self.check_runtime:
            try:
                check_runtime_installed(self.supervisor.executable)
            except RuntimeNotFoundError as e:
                self.report_error(RUNTIME_MISSING_TITLE, str(e))
                return None

        if not self._exit_hook_registered:
            atexit.register(self.supervisor.shutdown)
            self._exit_hook_registered = True

        logger.info(f"Running in production mode - using port: {self.port}")
        self.task = StartupTask(self.supervisor, self.port)
        self.task.add_done_callback(self.handle_report)
        return self.task.start()

    def on_close(self) -> None:
        """Window close hook: stop the server we own (nothing in dev mode)."""
        if self.dev_mode:
            return
        try:
            self.supervisor.stop()
        except StopError:
            logger.debug("Window closed with no server process to stop")
        except SupervisorError as e:
            logger.error(f"Failed to stop server: {e}")
