"""Centralized Pydantic models, enums, and type aliases for aicos-desktop."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field

from aicos_desktop.constants import (
    DEFAULT_HOST,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SERVER_PORT,
    DUPLICATE_CHECK_TIMEOUT,
    HEALTH_PATH,
)


# === Type Aliases ===

ReportStatus = Literal["success", "error"]


# === Enums ===


class SupervisorPhase(str, Enum):
    """Lifecycle phase of the supervised server."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class StartOutcome(str, Enum):
    """How a successful `start()` call was satisfied."""

    STARTED = "started"
    ALREADY_RUNNING_EXTERNALLY = "already_running_externally"
    ALREADY_OWNED = "already_owned"


# === Process Models ===


class TrackedProcess(BaseModel):
    """Identity of the one server process this supervisor launched.

    `create_time` tells the launched server apart from a later process that
    reuses its pid; `pgid` is the server's own session group on POSIX.
    """

    pid: int | None = None
    create_time: float | None = None
    pgid: int | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class SpawnSpec(BaseModel):
    """Everything needed to launch the server process."""

    executable: str
    args: list[str] = Field(default_factory=list)
    cwd: Path
    env: dict[str, str] = Field(default_factory=dict)
    entry_file: Path | None = None
    log_file: Path | None = None
    hide_console_window: bool = True

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    @property
    def command(self) -> list[str]:
        return [self.executable, *self.args]


class HealthProbeResult(BaseModel):
    """Outcome of a single health probe. Never persisted."""

    url: str
    reachable: bool = False
    healthy: bool = False
    status_code: int | None = None
    latency: float = 0.0
    error: str | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


# === Configuration Models ===


class SupervisorOptions(BaseModel):
    """Optional behaviors and timing for the supervisor and the shell around it."""

    show_error_dialog: bool = True
    use_navigate_api: bool = True
    check_duplicate_before_spawn: bool = True
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)
    duplicate_check_timeout: float = Field(default=DUPLICATE_CHECK_TIMEOUT, gt=0)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    health_path: str = HEALTH_PATH
    host: str = DEFAULT_HOST
    hide_console_window: bool = True

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class DesktopConfig(BaseModel):
    """Values read from the per-user configuration file."""

    port: int = Field(default=DEFAULT_SERVER_PORT, ge=1, le=65535)


# === Reports ===


class StartupReport(BaseModel):
    """Result of the background startup sequence, delivered to the shell."""

    status: ReportStatus
    url: str
    outcome: StartOutcome | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"
