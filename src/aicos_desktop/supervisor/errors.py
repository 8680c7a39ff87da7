"""Error taxonomy for the server supervisor."""

from __future__ import annotations

from pathlib import Path


class SupervisorError(Exception):
    """Base class for everything the supervisor reports."""


class StartError(SupervisorError):
    """The server could not be brought up."""


class SpawnError(StartError):
    """The server process could not be launched."""


class RuntimeNotFoundError(SpawnError):
    """The runtime executable is missing or does not run."""

    def __init__(self, executable: str, detail: str | None = None):
        self.executable: str = executable
        message = f"Runtime executable '{executable}' could not be launched"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class EntryFileMissingError(SpawnError):
    """The server entry file does not exist on disk."""

    def __init__(self, entry_file: Path):
        self.entry_file: Path = entry_file
        super().__init__(f"Server entry file not found: {entry_file}")


class ReadinessTimeoutError(StartError, TimeoutError):
    """The health endpoint never answered successfully within the attempt budget.

    The spawned process is left running so a slow start can still be diagnosed.
    """

    def __init__(self, url: str, attempts: int, elapsed: float):
        self.url: str = url
        self.attempts: int = attempts
        self.elapsed: float = elapsed
        super().__init__(
            f"Server at {url} not ready after {attempts} attempts ({elapsed:.1f}s)"
        )


class ServerExitedError(StartError):
    """The server process went away before it became ready."""

    def __init__(self, url: str, exit_code: int | None = None):
        self.url: str = url
        self.exit_code: int | None = exit_code
        if exit_code is None:
            message = f"Server for {url} was stopped before it became ready"
        else:
            message = f"Server for {url} exited with code {exit_code} before it became ready"
        super().__init__(message)


class StopError(SupervisorError):
    """`stop()` was called while no process is owned."""


class TerminationError(SupervisorError):
    """The OS did not confirm that the server process exited."""

    def __init__(self, pid: int | None, timeout: float):
        self.pid: int | None = pid
        self.timeout: float = timeout
        super().__init__(f"Server process pid={pid} did not exit within {timeout}s")
