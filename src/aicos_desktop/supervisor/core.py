"""Server supervisor - single owner of the backend server process.

This module ties process ownership and health probing together:
- At most one server process per supervisor (idempotent start)
- Pre-spawn duplicate detection so an already-serving port is reused, not fought over
- Bounded readiness wait that runs outside the state lock
- Forceful, reaped stop that is safe to call from any thread
"""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from aicos_desktop.constants import (
    MODE_ENV,
    PORT_ENV,
    PRODUCTION_MODE,
    SERVER_ENTRY_PARTS,
    TERMINATE_TIMEOUT,
)
from aicos_desktop.models import SpawnSpec, StartOutcome, SupervisorOptions, SupervisorPhase
from aicos_desktop.supervisor.errors import (
    ServerExitedError,
    StopError,
    SupervisorError,
)
from aicos_desktop.supervisor.logging import DesktopLogComponent, get_logger
from aicos_desktop.supervisor.process_control import ProcessHandle, node_executable
from aicos_desktop.supervisor.prober import ReadinessProber

logger = get_logger(DesktopLogComponent.SUPERVISOR)


class ProcessState(BaseModel):
    """Supervisor-local bookkeeping for the one server process.

    `handle` owns a process iff this supervisor spawned it and has not yet
    confirmed its termination.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(arbitrary_types_allowed=True)

    handle: ProcessHandle = Field(default_factory=ProcessHandle)
    port: int | None = None
    started_at: datetime | None = None
    phase: SupervisorPhase = SupervisorPhase.IDLE

    def clear(self) -> None:
        self.port = None
        self.started_at = None
        self.phase = SupervisorPhase.IDLE


class ServerSupervisor:
    """Starts, watches, and stops the bundled backend server.

    `start` is a coroutine meant to run on one background task; `stop` and
    `status` may be called from any thread and serialize on the same lock.
    """

    def __init__(
        self,
        resource_root: Path,
        options: SupervisorOptions | None = None,
        *,
        prober: ReadinessProber | None = None,
        executable: str | None = None,
        entry_file: Path | None = None,
        log_file: Path | None = None,
        terminate_timeout: float = TERMINATE_TIMEOUT,
    ):
        """Initialize the supervisor.

        Args:
            resource_root: Directory holding the bundled server (used as cwd)
            options: Optional behaviors and probe timing
            prober: Health prober; built from `options` if not provided
            executable: Runtime executable; resolved from PATH if not provided
            entry_file: Server entry file; defaults to `<resource_root>/dist/server/main.js`
            log_file: File receiving the server's stdout/stderr (discarded if None)
            terminate_timeout: Seconds to wait for the OS to confirm exit on stop
        """
        self.resource_root: Path = resource_root
        self.options: SupervisorOptions = options or SupervisorOptions()
        self.prober: ReadinessProber = prober or ReadinessProber(
            host=self.options.host,
            health_path=self.options.health_path,
            request_timeout=self.options.request_timeout,
            duplicate_check_timeout=self.options.duplicate_check_timeout,
        )
        self._executable: str | None = executable
        self.entry_file: Path = entry_file or resource_root.joinpath(*SERVER_ENTRY_PARTS)
        self.log_file: Path | None = log_file
        self.terminate_timeout: float = terminate_timeout

        self._lock: threading.Lock = threading.Lock()
        self._state: ProcessState = ProcessState()

    # === Queries ===

    def status(self) -> bool:
        """True iff a server process is owned. Bookkeeping only, no network."""
        with self._lock:
            return self._state.handle.is_owned()

    def check_process(self) -> bool:
        """Like `status()`, but first clears state if the process exited on its own."""
        with self._lock:
            if self._state.handle.is_owned():
                self._reap_if_exited()
            return self._state.handle.is_owned()

    @property
    def phase(self) -> SupervisorPhase:
        with self._lock:
            return self._state.phase

    @property
    def port(self) -> int | None:
        with self._lock:
            return self._state.port

    @property
    def started_at(self) -> datetime | None:
        with self._lock:
            return self._state.started_at

    @property
    def pid(self) -> int | None:
        with self._lock:
            return self._state.handle.pid

    @property
    def executable(self) -> str:
        if self._executable is None:
            self._executable = node_executable()
        return self._executable

    def server_url(self, port: int) -> str:
        return f"http://{self.options.host}:{port}"

    def build_spawn_spec(self, port: int) -> SpawnSpec:
        return SpawnSpec(
            executable=self.executable,
            args=[str(self.entry_file)],
            cwd=self.resource_root,
            env={PORT_ENV: str(port), MODE_ENV: PRODUCTION_MODE},
            entry_file=self.entry_file,
            log_file=self.log_file,
            hide_console_window=self.options.hide_console_window,
        )

    # === Lifecycle ===

    def _reap_if_exited(self) -> int | None:
        """Clear state for a process that died on its own. Caller holds the lock."""
        exit_code = self._state.handle.exit_code()
        if exit_code is None:
            return None
        self._state.handle.release()
        self._state.clear()
        logger.warning(f"Server process exited on its own (exit code {exit_code})")
        return exit_code

    async def start(self, port: int) -> StartOutcome:
        """Bring the server up on `port`, or reuse one that is already serving it.

        Returns:
            STARTED when a new process became ready, ALREADY_OWNED when this
            supervisor already owns a process, ALREADY_RUNNING_EXTERNALLY when a
            healthy server was found on the port before spawning

        Raises:
            SpawnError: If the process could not be launched
            ReadinessTimeoutError: If it never became healthy (it is left running)
            ServerExitedError: If it exited or was stopped before becoming healthy
        """
        with self._lock:
            if self._state.handle.is_owned():
                self._reap_if_exited()
            if self._state.handle.is_owned():
                logger.debug(f"Server already owned (pid={self._state.handle.pid})")
                return StartOutcome.ALREADY_OWNED

        health_url = self.prober.health_url(port)

        if self.options.check_duplicate_before_spawn:
            if await self.prober.check_already_running(health_url):
                logger.info(
                    f"Using existing server on port {port}, skipping process startup"
                )
                return StartOutcome.ALREADY_RUNNING_EXTERNALLY

        with self._lock:
            # A concurrent start may have spawned while the duplicate check ran.
            if self._state.handle.is_owned():
                return StartOutcome.ALREADY_OWNED

            spec = self.build_spawn_spec(port)
            process = self._state.handle.spawn(spec)
            self._state.port = port
            self._state.started_at = datetime.now()
            self._state.phase = SupervisorPhase.STARTING
            logger.info(f"Server process started on port {port} (pid={process.pid})")

        def still_ours() -> bool:
            with self._lock:
                if self._state.handle.pid != process.pid:
                    return False
                return self._state.handle.exit_code() is None

        try:
            await self.prober.wait_until_ready(
                health_url,
                max_attempts=self.options.max_attempts,
                retry_delay=self.options.retry_delay,
                alive=still_ours,
            )
        except ServerExitedError as e:
            with self._lock:
                exit_code = None
                if self._state.handle.pid == process.pid:
                    exit_code = self._reap_if_exited()
            raise ServerExitedError(health_url, exit_code) from e

        with self._lock:
            if self._state.handle.pid == process.pid:
                self._state.phase = SupervisorPhase.RUNNING
        return StartOutcome.STARTED

    def stop(self) -> None:
        """Kill the owned server process and clear state.

        Raises:
            StopError: If no process is owned (state is left untouched)
            TerminationError: If the OS did not confirm exit (ownership is kept)
        """
        with self._lock:
            if not self._state.handle.is_owned():
                raise StopError("Server is not running")

            pid = self._state.handle.pid
            previous_phase = self._state.phase
            self._state.phase = SupervisorPhase.STOPPING
            try:
                exit_code = self._state.handle.terminate(timeout=self.terminate_timeout)
            except SupervisorError:
                self._state.phase = previous_phase
                raise
            self._state.clear()
            logger.info(f"Server stopped (pid={pid}, exit code {exit_code})")

    def shutdown(self) -> None:
        """Stop the server if one is owned. Used as the at-exit hook."""
        try:
            self.stop()
        except StopError:
            logger.debug("Shutdown: no server process to stop")
        except SupervisorError as e:
            logger.error(f"Shutdown: {e}")

    def __repr__(self) -> str:
        return (
            f"ServerSupervisor(resource_root={str(self.resource_root)!r}, "
            f"phase={self._state.phase.value})"
        )
