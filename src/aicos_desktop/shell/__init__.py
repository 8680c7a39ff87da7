"""Desktop shell integration: window adapters and the glue that drives the supervisor."""

from aicos_desktop.shell.app import DesktopShell, Window
from aicos_desktop.shell.window import ConsoleWindow, WebviewWindow, run_desktop

__all__ = ["ConsoleWindow", "DesktopShell", "WebviewWindow", "Window", "run_desktop"]
