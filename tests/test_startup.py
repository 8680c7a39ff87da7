"""Tests for the background startup task and the one-shot navigation gate."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from aicos_desktop.models import StartOutcome, StartupReport
from aicos_desktop.supervisor.core import ServerSupervisor
from aicos_desktop.supervisor.errors import ReadinessTimeoutError
from aicos_desktop.supervisor.startup import NavigationGate, StartupTask, run_startup


class TestNavigationGate:
    def test_opens_once(self) -> None:
        gate = NavigationGate()
        assert gate.is_open is False
        assert gate.open() is True
        assert gate.is_open is True
        assert gate.open() is False

    def test_only_one_thread_wins(self) -> None:
        gate = NavigationGate()
        barrier = threading.Barrier(8)
        wins: list[bool] = []
        lock = threading.Lock()

        def contender() -> None:
            barrier.wait()
            opened = gate.open()
            with lock:
                wins.append(opened)

        threads = [threading.Thread(target=contender) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert wins.count(True) == 1


class TestRunStartup:
    @pytest.mark.asyncio
    async def test_success_report(self, tmp_path: Path) -> None:
        supervisor = ServerSupervisor(tmp_path)
        with patch.object(
            supervisor, "start", new=AsyncMock(return_value=StartOutcome.ALREADY_RUNNING_EXTERNALLY)
        ):
            report = await run_startup(supervisor, 4567)

        assert report.ok is True
        assert report.status == "success"
        assert report.url == "http://localhost:4567"
        assert report.outcome == StartOutcome.ALREADY_RUNNING_EXTERNALLY
        assert report.message == "Using existing server"

    @pytest.mark.asyncio
    async def test_error_report(self, tmp_path: Path) -> None:
        supervisor = ServerSupervisor(tmp_path)
        error = ReadinessTimeoutError("http://localhost:4567/health", 30, 15.0)
        with patch.object(supervisor, "start", new=AsyncMock(side_effect=error)):
            report = await run_startup(supervisor, 4567)

        assert report.ok is False
        assert report.status == "error"
        assert report.outcome is None
        assert "not ready after 30 attempts" in report.message


class TestStartupTask:
    def test_result_and_callback(self, tmp_path: Path) -> None:
        supervisor = ServerSupervisor(tmp_path)
        delivered: list[StartupReport] = []

        with patch.object(
            supervisor, "start", new=AsyncMock(return_value=StartOutcome.STARTED)
        ):
            task = StartupTask(supervisor, 8080)
            task.add_done_callback(delivered.append)
            report = task.start().result(timeout=5)

        assert task.done() is True
        assert report.ok is True
        assert report.url == "http://localhost:8080"
        assert report.message == "Server started"
        assert delivered == [report]

    def test_callback_after_completion_runs_immediately(self, tmp_path: Path) -> None:
        supervisor = ServerSupervisor(tmp_path)
        with patch.object(
            supervisor, "start", new=AsyncMock(return_value=StartOutcome.ALREADY_OWNED)
        ):
            task = StartupTask(supervisor, 4567).start()
            task.result(timeout=5)

        delivered: list[StartupReport] = []
        task.add_done_callback(delivered.append)
        assert len(delivered) == 1
        assert delivered[0].outcome == StartOutcome.ALREADY_OWNED

    def test_unexpected_exception_becomes_error_report(self, tmp_path: Path) -> None:
        supervisor = ServerSupervisor(tmp_path)
        with patch.object(
            supervisor, "start", new=AsyncMock(side_effect=RuntimeError("kaboom"))
        ):
            report = StartupTask(supervisor, 4567).start().result(timeout=5)

        assert report.ok is False
        assert "kaboom" in report.message
