"""Tests for process ownership: spawn, terminate, and runtime checks."""

from __future__ import annotations

import json
import sys
import time
from collections.abc import Iterator
from pathlib import Path

import psutil
import pytest

from aicos_desktop.models import SpawnSpec
from aicos_desktop.supervisor.errors import (
    EntryFileMissingError,
    RuntimeNotFoundError,
    SpawnError,
)
from aicos_desktop.supervisor.process_control import (
    ProcessHandle,
    check_runtime_installed,
    node_executable,
    track_process,
    validate_tracked,
)

from .conftest import CRASHING_SERVER, ENV_REPORTING_SERVER, SLEEPING_SERVER, write_server


def _spec(resource_root: Path, entry: Path, **kwargs) -> SpawnSpec:
    return SpawnSpec(
        executable=kwargs.pop("executable", sys.executable),
        args=[str(entry)],
        cwd=resource_root,
        env=kwargs.pop("env", {"PORT": "4567", "NODE_ENV": "production"}),
        entry_file=entry,
        **kwargs,
    )


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


@pytest.fixture
def handle() -> Iterator[ProcessHandle]:
    h = ProcessHandle()
    yield h
    h.terminate()


class TestSpawn:
    def test_spawn_passes_env_and_cwd(self, tmp_path: Path, handle: ProcessHandle) -> None:
        entry = write_server(tmp_path, ENV_REPORTING_SERVER)
        handle.spawn(_spec(tmp_path, entry, env={"PORT": "8123", "NODE_ENV": "production"}))

        report = tmp_path / "env.json"
        assert _wait_for(report.exists)
        assert _wait_for(lambda: report.read_text().endswith("}"))
        data = json.loads(report.read_text())
        assert data["PORT"] == "8123"
        assert data["NODE_ENV"] == "production"
        assert Path(data["cwd"]).resolve() == tmp_path.resolve()

    def test_spawn_takes_ownership(self, tmp_path: Path, handle: ProcessHandle) -> None:
        entry = write_server(tmp_path, SLEEPING_SERVER)
        assert handle.is_owned() is False
        assert handle.pid is None

        process = handle.spawn(_spec(tmp_path, entry))
        assert handle.is_owned() is True
        assert handle.pid == process.pid
        assert handle.exit_code() is None
        assert handle.tracked is not None
        assert handle.tracked.pid == process.pid

    def test_spawn_refuses_second_process(self, tmp_path: Path, handle: ProcessHandle) -> None:
        entry = write_server(tmp_path, SLEEPING_SERVER)
        first = handle.spawn(_spec(tmp_path, entry))
        with pytest.raises(SpawnError):
            handle.spawn(_spec(tmp_path, entry))
        assert handle.pid == first.pid

    def test_missing_entry_file(self, tmp_path: Path, handle: ProcessHandle) -> None:
        entry = tmp_path / "dist" / "server" / "main.js"
        with pytest.raises(EntryFileMissingError) as exc_info:
            handle.spawn(_spec(tmp_path, entry))
        assert exc_info.value.entry_file == entry
        assert str(entry) in str(exc_info.value)
        assert handle.is_owned() is False

    def test_missing_executable(self, tmp_path: Path, handle: ProcessHandle) -> None:
        entry = write_server(tmp_path, SLEEPING_SERVER)
        with pytest.raises(RuntimeNotFoundError) as exc_info:
            handle.spawn(_spec(tmp_path, entry, executable="aicos-no-such-runtime"))
        assert exc_info.value.executable == "aicos-no-such-runtime"
        assert isinstance(exc_info.value, SpawnError)
        assert handle.is_owned() is False

    def test_output_goes_to_log_file(self, tmp_path: Path, handle: ProcessHandle) -> None:
        entry = write_server(tmp_path, "print('hello from server', flush=True)\n")
        log_file = tmp_path / "logs" / "server.log"
        handle.spawn(_spec(tmp_path, entry, log_file=log_file))
        assert _wait_for(lambda: handle.exit_code() is not None)
        assert "hello from server" in log_file.read_text()


class TestTerminate:
    def test_terminate_without_process_is_noop(self) -> None:
        handle = ProcessHandle()
        assert handle.terminate() is None
        assert handle.is_owned() is False

    def test_terminate_kills_and_reaps(self, tmp_path: Path) -> None:
        entry = write_server(tmp_path, SLEEPING_SERVER)
        handle = ProcessHandle()
        process = handle.spawn(_spec(tmp_path, entry))

        handle.terminate()

        assert handle.is_owned() is False
        assert handle.pid is None
        # Reaped: the Popen has a return code and no zombie remains.
        assert process.returncode is not None
        assert not psutil.pid_exists(process.pid) or (
            psutil.Process(process.pid).status() != psutil.STATUS_ZOMBIE
        )

    def test_terminate_is_idempotent(self, tmp_path: Path) -> None:
        entry = write_server(tmp_path, SLEEPING_SERVER)
        handle = ProcessHandle()
        handle.spawn(_spec(tmp_path, entry))
        handle.terminate()
        assert handle.terminate() is None

    def test_terminate_kills_children(self, tmp_path: Path) -> None:
        child_script = tmp_path / "child.py"
        child_script.write_text(SLEEPING_SERVER)
        entry = write_server(
            tmp_path,
            "import subprocess, sys, time\n"
            f"subprocess.Popen([sys.executable, {str(child_script)!r}])\n"
            "while True:\n"
            "    time.sleep(1)\n",
        )
        handle = ProcessHandle()
        process = handle.spawn(_spec(tmp_path, entry))
        parent = psutil.Process(process.pid)
        assert _wait_for(lambda: len(parent.children()) == 1)
        child = parent.children()[0]

        handle.terminate()

        assert _wait_for(lambda: not child.is_running() or child.status() == psutil.STATUS_ZOMBIE)

    def test_exit_code_and_release_after_crash(self, tmp_path: Path) -> None:
        entry = write_server(tmp_path, CRASHING_SERVER)
        handle = ProcessHandle()
        handle.spawn(_spec(tmp_path, entry))
        assert _wait_for(lambda: handle.exit_code() is not None)
        assert handle.exit_code() == 3
        assert handle.release() == 3
        assert handle.is_owned() is False

    def test_release_refuses_running_process(self, tmp_path: Path, handle: ProcessHandle) -> None:
        entry = write_server(tmp_path, SLEEPING_SERVER)
        handle.spawn(_spec(tmp_path, entry))
        with pytest.raises(SpawnError):
            handle.release()
        assert handle.is_owned() is True


class TestTracking:
    def test_track_and_validate(self, tmp_path: Path, handle: ProcessHandle) -> None:
        entry = write_server(tmp_path, SLEEPING_SERVER)
        process = handle.spawn(_spec(tmp_path, entry))
        tp = track_process(process.pid)
        assert tp is not None
        assert validate_tracked(tp) is not None
        # A mismatching create_time means the PID was reused by someone else.
        stale = tp.model_copy(update={"create_time": (tp.create_time or 0) - 100})
        assert validate_tracked(stale) is None

    def test_track_unknown_pid(self) -> None:
        assert track_process(2**22 + 12345) is None


class TestRuntime:
    def test_node_executable_name(self) -> None:
        name = Path(node_executable()).name.lower()
        assert name in ("node", "node.exe")

    def test_check_runtime_installed(self) -> None:
        version = check_runtime_installed(sys.executable)
        assert version.lower().startswith("python") or version == ""

    def test_check_runtime_missing(self) -> None:
        with pytest.raises(RuntimeNotFoundError) as exc_info:
            check_runtime_installed("aicos-no-such-runtime")
        assert "nodejs.org" in str(exc_info.value)

    @pytest.mark.skipif(sys.platform == "win32", reason="relies on a shebang script")
    def test_check_runtime_failing(self, tmp_path: Path) -> None:
        fake_node = tmp_path / "fake-node"
        fake_node.write_text(f"#!{sys.executable}\nimport sys\nsys.exit(2)\n")
        fake_node.chmod(0o755)
        with pytest.raises(RuntimeNotFoundError) as exc_info:
            check_runtime_installed(str(fake_node))
        assert "exited with code 2" in str(exc_info.value)
