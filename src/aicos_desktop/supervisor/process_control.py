"""Ownership of the single backend server process.

The handle launches `node dist/server/main.js`, remembers which process it
launched (pid plus creation time, so a recycled pid is never killed), and on
stop kills the server together with anything it forked before reaping it.
POSIX servers run in their own session so the whole group can be signalled;
Windows servers get their own process group and no console window.
"""

from __future__ import annotations

import os
import shutil
import signal
import subprocess
from typing import IO, Any

import psutil

from aicos_desktop.constants import CREATE_NO_WINDOW, NODE_INSTALL_URL, TERMINATE_TIMEOUT
from aicos_desktop.models import SpawnSpec, TrackedProcess
from aicos_desktop.supervisor.errors import (
    EntryFileMissingError,
    RuntimeNotFoundError,
    SpawnError,
    TerminationError,
)
from aicos_desktop.supervisor.logging import DesktopLogComponent, get_logger
from aicos_desktop.utils import ensure_dir

logger = get_logger(DesktopLogComponent.PROCESS_CONTROL)


# =============================================================================
# Identity of the launched server
# =============================================================================


def _session_group(pid: int) -> int | None:
    if os.name == "nt":
        return None
    try:
        return os.getpgid(pid)
    except OSError:
        return None


def track_process(pid: int) -> TrackedProcess | None:
    """Snapshot the identity of a freshly launched server (None if it is already gone)."""
    try:
        created = psutil.Process(pid).create_time()
    except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError):
        return None
    return TrackedProcess(pid=pid, create_time=float(created), pgid=_session_group(pid))


def validate_tracked(tp: TrackedProcess) -> psutil.Process | None:
    """Look the server up again, refusing a process that merely reuses its pid."""
    if tp.pid is None or tp.create_time is None:
        return None
    try:
        proc = psutil.Process(tp.pid)
        same_process = abs(float(proc.create_time()) - tp.create_time) <= 0.001
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None
    return proc if same_process else None


def list_descendants(tp: TrackedProcess) -> list[psutil.Process]:
    """Everything the server forked, collected before it is killed."""
    proc = validate_tracked(tp)
    if proc is None:
        return []
    try:
        return proc.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []


def _kill_descendants(children: list[psutil.Process], timeout: float) -> None:
    """Kill whatever the server forked (best-effort, children may already be gone)."""
    for child in children:
        try:
            child.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    if children:
        _, alive = psutil.wait_procs(children, timeout=timeout)
        if alive:
            logger.warning(
                f"{len(alive)} child process(es) still alive after kill: "
                f"{[p.pid for p in alive]}"
            )


def _kill_process_group(pgid: int) -> None:
    try:
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError as e:
        logger.debug(f"Could not signal process group {pgid}: {e}")


# =============================================================================
# Runtime Resolution
# =============================================================================


def node_executable() -> str:
    """Return the Node.js executable, preferring a full path from the system PATH."""
    name = "node.exe" if os.name == "nt" else "node"
    return shutil.which(name) or name


def check_runtime_installed(executable: str, timeout: float = 10.0) -> str:
    """Run `<executable> --version` and return the reported version.

    Raises:
        RuntimeNotFoundError: If the runtime is missing or fails to report a version
    """
    run_kwargs: dict[str, Any] = {}
    if os.name == "nt":
        run_kwargs["creationflags"] = CREATE_NO_WINDOW

    try:
        result = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
            **run_kwargs,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise RuntimeNotFoundError(
            executable, f"{e}. Install Node.js from {NODE_INSTALL_URL}"
        ) from e

    if result.returncode != 0:
        raise RuntimeNotFoundError(
            executable,
            f"'--version' exited with code {result.returncode}; check the Node.js installation",
        )

    version = result.stdout.strip()
    logger.info(f"Detected Node.js version: {version}")
    return version


# =============================================================================
# Process Handle
# =============================================================================


class ProcessHandle:
    """Owns zero or one server process.

    Not synchronized on its own: the supervisor calls it only while holding its lock.
    """

    def __init__(self) -> None:
        self._process: subprocess.Popen[bytes] | None = None
        self._tracked: TrackedProcess | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def tracked(self) -> TrackedProcess | None:
        return self._tracked

    def is_owned(self) -> bool:
        return self._process is not None

    def exit_code(self) -> int | None:
        """Return the exit code if the owned process has exited, without blocking."""
        if self._process is None:
            return None
        return self._process.poll()

    def spawn(self, spec: SpawnSpec) -> subprocess.Popen[bytes]:
        """Launch the server process described by `spec` and take ownership of it.

        Raises:
            SpawnError: If a process is already owned or the OS refuses to launch it
            EntryFileMissingError: If the entry file does not exist
            RuntimeNotFoundError: If the executable cannot be found
        """
        if self._process is not None:
            raise SpawnError(f"A server process is already owned (pid={self.pid})")

        if spec.entry_file is not None and not spec.entry_file.is_file():
            raise EntryFileMissingError(spec.entry_file)

        popen_kwargs: dict[str, Any] = {}
        if os.name == "nt":
            flags = subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]
            if spec.hide_console_window:
                flags |= CREATE_NO_WINDOW
            popen_kwargs["creationflags"] = flags
        else:
            popen_kwargs["start_new_session"] = True

        env = {**os.environ, **spec.env}

        log_handle: IO[bytes] | None = None
        if spec.log_file is not None:
            ensure_dir(spec.log_file.parent)
            log_handle = spec.log_file.open("ab")
        output: IO[bytes] | int = (
            log_handle if log_handle is not None else subprocess.DEVNULL
        )

        try:
            process = subprocess.Popen(
                spec.command,
                cwd=spec.cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=output,
                stderr=output,
                **popen_kwargs,
            )
        except FileNotFoundError as e:
            raise RuntimeNotFoundError(spec.executable, str(e)) from e
        except PermissionError as e:
            raise SpawnError(f"Permission denied launching {spec.executable}: {e}") from e
        except OSError as e:
            raise SpawnError(f"Failed to start server process: {e}") from e
        finally:
            # The child keeps its own copy of the descriptor.
            if log_handle is not None:
                log_handle.close()

        self._process = process
        self._tracked = track_process(process.pid)
        logger.debug(f"Spawned {' '.join(spec.command)} (pid={process.pid}, cwd={spec.cwd})")
        return process

    def terminate(self, timeout: float = TERMINATE_TIMEOUT) -> int | None:
        """Forcefully stop the owned process tree and reap it.

        Calling this with nothing owned is a no-op. Returns the exit code of the
        reaped process, or None when nothing was owned.

        Raises:
            TerminationError: If the process is not confirmed gone within `timeout`
                (ownership is kept so the call can be retried)
        """
        process = self._process
        if process is None:
            return None

        tp = self._tracked
        children = list_descendants(tp) if tp is not None else []

        if process.poll() is None:
            logger.debug(f"Killing server process pid={process.pid}")
            if os.name != "nt" and tp is not None and tp.pgid is not None:
                _kill_process_group(tp.pgid)
            try:
                process.kill()
            except ProcessLookupError:
                pass

        try:
            exit_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise TerminationError(process.pid, timeout) from e

        _kill_descendants(children, timeout=min(timeout, 2.0))

        self._process = None
        self._tracked = None
        logger.debug(f"Reaped server process pid={process.pid} (exit code {exit_code})")
        return exit_code

    def release(self) -> int | None:
        """Drop ownership of a process that already exited on its own, reaping it."""
        process = self._process
        if process is None:
            return None
        exit_code = process.poll()
        if exit_code is None:
            raise SpawnError(f"Server process pid={process.pid} is still running")
        self._process = None
        self._tracked = None
        return exit_code
