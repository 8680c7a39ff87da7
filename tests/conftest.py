"""Shared fixtures: fake server scripts, resource roots, and free ports."""

from __future__ import annotations

import socket
import sys
import textwrap
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from aicos_desktop.models import SupervisorOptions
from aicos_desktop.supervisor.core import ServerSupervisor

# Python runs a script given by path regardless of its extension, so the fake
# servers are written straight to dist/server/main.js.
HEALTHY_SERVER = textwrap.dedent(
    """
    import os
    from http.server import BaseHTTPRequestHandler, HTTPServer

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            self.send_response(200 if self.path == "/health" else 404)
            self.end_headers()
            self.wfile.write(b"ok")

        def log_message(self, *args):
            pass

    HTTPServer(("127.0.0.1", int(os.environ["PORT"])), Handler).serve_forever()
    """
)

SLEEPING_SERVER = textwrap.dedent(
    """
    import time

    while True:
        time.sleep(1)
    """
)

CRASHING_SERVER = textwrap.dedent(
    """
    import sys

    sys.exit(3)
    """
)

ENV_REPORTING_SERVER = textwrap.dedent(
    """
    import json
    import os
    import time

    with open("env.json", "w") as fh:
        json.dump(
            {
                "PORT": os.environ.get("PORT"),
                "NODE_ENV": os.environ.get("NODE_ENV"),
                "cwd": os.getcwd(),
            },
            fh,
        )
    while True:
        time.sleep(1)
    """
)


def write_server(resource_root: Path, source: str) -> Path:
    entry = resource_root / "dist" / "server" / "main.js"
    entry.parent.mkdir(parents=True, exist_ok=True)
    entry.write_text(source)
    return entry


def find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


@pytest.fixture
def free_port() -> int:
    return find_free_port()


@pytest.fixture
def fast_options() -> SupervisorOptions:
    """Real-network options with short timings so tests stay quick."""
    return SupervisorOptions(
        host="127.0.0.1",
        max_attempts=100,
        retry_delay=0.05,
        duplicate_check_timeout=0.5,
        request_timeout=0.5,
    )


@pytest.fixture
def make_supervisor(
    tmp_path: Path, fast_options: SupervisorOptions
) -> Iterator[Callable[..., ServerSupervisor]]:
    """Build supervisors that run `python <resource_root>/dist/server/main.js`.

    Every supervisor created here is shut down after the test.
    """
    created: list[ServerSupervisor] = []

    def factory(
        source: str | None = SLEEPING_SERVER,
        options: SupervisorOptions | None = None,
        **kwargs,
    ) -> ServerSupervisor:
        resource_root = tmp_path / f"resources-{len(created)}"
        resource_root.mkdir()
        if source is not None:
            write_server(resource_root, source)
        kwargs.setdefault("executable", sys.executable)
        supervisor = ServerSupervisor(resource_root, options or fast_options, **kwargs)
        created.append(supervisor)
        return supervisor

    yield factory

    for supervisor in created:
        supervisor.shutdown()
