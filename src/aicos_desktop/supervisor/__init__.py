"""Server process supervisor for the desktop shell."""

from aicos_desktop.supervisor.core import ProcessState, ServerSupervisor
from aicos_desktop.supervisor.errors import (
    EntryFileMissingError,
    ReadinessTimeoutError,
    RuntimeNotFoundError,
    ServerExitedError,
    SpawnError,
    StartError,
    StopError,
    SupervisorError,
    TerminationError,
)
from aicos_desktop.supervisor.process_control import ProcessHandle
from aicos_desktop.supervisor.prober import ReadinessProber
from aicos_desktop.supervisor.startup import NavigationGate, StartupTask

__all__ = [
    "EntryFileMissingError",
    "NavigationGate",
    "ProcessHandle",
    "ProcessState",
    "ReadinessProber",
    "ReadinessTimeoutError",
    "RuntimeNotFoundError",
    "ServerExitedError",
    "ServerSupervisor",
    "SpawnError",
    "StartError",
    "StartupTask",
    "StopError",
    "SupervisorError",
    "TerminationError",
]
