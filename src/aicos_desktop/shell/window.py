"""Window implementations for the desktop shell: pywebview and a headless console."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from rich.markup import escape

from aicos_desktop.utils import console

if TYPE_CHECKING:
    import webview

    from aicos_desktop.shell.app import DesktopShell

WINDOW_TITLE = "AI Code Switch"

LOADING_HTML = """<!doctype html>
<html>
  <body style="font-family:system-ui;display:flex;align-items:center;justify-content:center;height:100vh;margin:0;color:#555">
    <h2>Starting server...</h2>
  </body>
</html>
"""


class WebviewWindow:
    """Adapts a pywebview window to the shell's Window protocol."""

    def __init__(self, window: webview.Window):
        self._window: webview.Window = window

    def load_url(self, url: str) -> None:
        self._window.load_url(url)

    def evaluate_js(self, script: str) -> object:
        return self._window.evaluate_js(script)

    def show_error(self, title: str, message: str) -> None:
        # pywebview has no one-button message box; either button dismisses it.
        self._window.create_confirmation_dialog(title, message)


class ConsoleWindow:
    """Window stand-in for headless runs: reports navigation on the console."""

    def __init__(self) -> None:
        self.url: str | None = None
        self.errors: list[tuple[str, str]] = []

    def load_url(self, url: str) -> None:
        self.url = url
        console.print(f"[bold green]✨ Server ready:[/bold green] {escape(url)}")

    def evaluate_js(self, script: str) -> object:
        console.print(f"[dim]{escape(script)}[/dim]")
        return None

    def show_error(self, title: str, message: str) -> None:
        self.errors.append((title, message))
        console.print(f"[red]❌ {escape(title)}: {escape(message)}[/red]")


def run_desktop(
    build_shell: Callable[[WebviewWindow], DesktopShell],
    *,
    width: int = 1280,
    height: int = 800,
) -> None:
    """Open the main window, start the server behind it, and block until it closes."""
    import webview

    window = webview.create_window(
        WINDOW_TITLE,
        html=LOADING_HTML,
        width=width,
        height=height,
        min_size=(800, 600),
    )
    shell = build_shell(WebviewWindow(window))
    window.events.closing += shell.on_close

    # launch runs on pywebview's worker thread once the GUI loop is up.
    webview.start(func=shell.launch)
