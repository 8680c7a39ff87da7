"""Command line entry point for aicos-desktop."""

import asyncio
import time
from pathlib import Path
from typing import Annotated

from rich.table import Table
from typer import Exit, Option, Typer

from aicos_desktop import __version__
from aicos_desktop.config import (
    config_path,
    default_log_file,
    default_resource_root,
    load_config,
)
from aicos_desktop.models import StartOutcome, SupervisorOptions
from aicos_desktop.shell.app import DesktopShell
from aicos_desktop.shell.window import ConsoleWindow, WebviewWindow, run_desktop
from aicos_desktop.supervisor.core import ServerSupervisor
from aicos_desktop.supervisor.logging import configure_logging
from aicos_desktop.supervisor.prober import ReadinessProber
from aicos_desktop.utils import console, format_elapsed_ms

app = Typer(
    name="aicos-desktop",
    help="Run the AI Code Switch server behind a desktop window",
    no_args_is_help=True,
)

PortOption = Annotated[
    int | None,
    Option("--port", "-p", help="Server port (defaults to PORT from the config file)"),
]
ResourceRootOption = Annotated[
    Path | None,
    Option(help="Directory containing dist/server/main.js"),
]
DuplicateCheckOption = Annotated[
    bool,
    Option(
        "--duplicate-check/--no-duplicate-check",
        help="Reuse a server that already answers on the port instead of spawning",
    ),
]
MaxAttemptsOption = Annotated[
    int, Option(help="Health probes before giving up on readiness")
]
RetryDelayOption = Annotated[
    float, Option(help="Seconds between health probes")
]
VerboseOption = Annotated[bool, Option("--verbose", "-v", help="Show debug logs")]


def _build_supervisor(
    resource_root: Path | None,
    options: SupervisorOptions,
) -> ServerSupervisor:
    return ServerSupervisor(
        resource_root or default_resource_root(),
        options,
        log_file=default_log_file(),
    )


@app.command(name="run", help="Open the desktop window and start the server behind it")
def run(
    port: PortOption = None,
    resource_root: ResourceRootOption = None,
    dev_url: Annotated[
        str | None,
        Option(help="Load this URL and do not manage the server (dev mode)"),
    ] = None,
    duplicate_check: DuplicateCheckOption = True,
    navigate_api: Annotated[
        bool,
        Option(
            "--navigate-api/--eval-navigation",
            help="Navigate with the window API instead of evaluating JavaScript",
        ),
    ] = True,
    dialogs: Annotated[
        bool, Option("--dialogs/--no-dialogs", help="Show error dialogs")
    ] = True,
    max_attempts: MaxAttemptsOption = 30,
    retry_delay: RetryDelayOption = 0.5,
    verbose: VerboseOption = False,
):
    configure_logging(verbose=verbose)
    options = SupervisorOptions(
        show_error_dialog=dialogs,
        use_navigate_api=navigate_api,
        check_duplicate_before_spawn=duplicate_check,
        max_attempts=max_attempts,
        retry_delay=retry_delay,
    )
    server_port = port if port is not None else load_config().port
    supervisor = _build_supervisor(resource_root, options)

    def build_shell(window: WebviewWindow) -> DesktopShell:
        return DesktopShell(supervisor, window, server_port, dev_url=dev_url)

    run_desktop(build_shell)


@app.command(name="serve", help="Start the server without a window and keep it up until Ctrl+C")
def serve(
    port: PortOption = None,
    resource_root: ResourceRootOption = None,
    duplicate_check: DuplicateCheckOption = True,
    max_attempts: MaxAttemptsOption = 30,
    retry_delay: RetryDelayOption = 0.5,
    verbose: VerboseOption = False,
):
    configure_logging(verbose=verbose)
    options = SupervisorOptions(
        show_error_dialog=True,
        check_duplicate_before_spawn=duplicate_check,
        max_attempts=max_attempts,
        retry_delay=retry_delay,
    )
    server_port = port if port is not None else load_config().port
    supervisor = _build_supervisor(resource_root, options)
    shell = DesktopShell(supervisor, ConsoleWindow(), server_port)

    phase_start = time.perf_counter()
    task = shell.launch()
    if task is None:
        raise Exit(code=1)

    with console.status(f"[bold cyan]Starting server on port {server_port}..."):
        report = task.result()

    if not report.ok:
        # A timed-out server is left running by the supervisor; headless runs clean it up.
        supervisor.shutdown()
        raise Exit(code=1)

    if report.outcome == StartOutcome.ALREADY_RUNNING_EXTERNALLY:
        console.print(
            f"[yellow]⚠️  A server is already running at {report.url}; nothing to supervise.[/yellow]"
        )
        return

    console.print(f"[dim]Ready in {format_elapsed_ms(phase_start)}. Press Ctrl+C to stop.[/dim]")
    try:
        while supervisor.check_process():
            time.sleep(0.5)
        console.print("[red]❌ Server process exited[/red]")
        raise Exit(code=1)
    except KeyboardInterrupt:
        console.print()
        console.print("[bold yellow]Stopping server...[/bold yellow]")
        supervisor.shutdown()
        console.print("[green]✓[/green] Server stopped")


@app.command(name="probe", help="Check the server's health endpoint once")
def probe(
    port: PortOption = None,
    timeout: Annotated[float, Option(help="Request timeout in seconds")] = 1.0,
):
    server_port = port if port is not None else load_config().port
    prober = ReadinessProber()
    url = prober.health_url(server_port)
    result = asyncio.run(prober.probe_once(url, timeout=timeout))

    table = Table(title="Server Health", show_header=True, header_style="bold magenta")
    table.add_column("URL", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("HTTP", justify="right")
    table.add_column("Latency", justify="right", style="green")

    if result.healthy:
        status = "[green]●[/green] Healthy"
    elif result.reachable:
        status = "[yellow]●[/yellow] Unhealthy"
    else:
        status = "[red]●[/red] Unreachable"
    table.add_row(
        url,
        status,
        str(result.status_code) if result.status_code is not None else "-",
        f"{result.latency * 1000:.0f}ms",
    )
    console.print(table)
    if result.error:
        console.print(f"[dim]{result.error}[/dim]")

    if not result.healthy:
        raise Exit(code=1)


@app.command(name="config", help="Show the resolved configuration")
def show_config():
    path = config_path()
    config = load_config(path)
    console.print(f"[cyan]Config file:[/cyan] {path}{'' if path.is_file() else ' (missing)'}")
    console.print(f"[cyan]Port:[/cyan] {config.port}")
    console.print(f"[cyan]Resource root:[/cyan] {default_resource_root()}")
    console.print(f"[cyan]Server log:[/cyan] {default_log_file()}")


@app.command(name="version", help="Show the version")
def version():
    console.print(f"aicos-desktop {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
