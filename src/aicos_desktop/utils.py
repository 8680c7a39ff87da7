import logging
import time
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from typing_extensions import override

# legacy_windows=False keeps UTF-8 output working on modern Windows consoles
console = Console(legacy_windows=False)

_LEVEL_COLORS: dict[int, str] = {
    logging.ERROR: "red",
    logging.WARNING: "yellow",
}


def format_elapsed_ms(start_time_perf: float) -> str:
    """Format elapsed time since start_time_perf as `850ms` or `2s 140ms`."""
    elapsed_seconds = time.perf_counter() - start_time_perf
    if elapsed_seconds < 1:
        return f"{int(elapsed_seconds * 1000)}ms"
    seconds = int(elapsed_seconds)
    remaining_ms = int((elapsed_seconds - seconds) * 1000)
    return f"{seconds}s {remaining_ms}ms"


def print_with_prefix(prefix: str, text: str, color: str, width: int = 10) -> None:
    """Print each line of `text` as `<timestamp> | <prefix> | <line>`.

    Args:
        prefix: Component name shown in the second column
        text: Message, possibly spanning several lines
        color: Rich color for the prefix column
        width: Column width the prefix is padded to
    """
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    column = escape(prefix).ljust(width)
    for line in text.splitlines() or [""]:
        console.print(f"{timestamp} | [{color}]{column}[/] | {escape(line)}")


class PrefixedLogHandler(logging.Handler):
    """Routes a component logger to the console through `print_with_prefix`.

    Warnings and errors recolor the prefix column; tracebacks are printed under
    the message.
    """

    def __init__(self, prefix: str, color: str, width: int = 10):
        super().__init__()
        self.prefix: str = prefix
        self.color: str = color
        self.width: int = width

    def _color_for(self, levelno: int) -> str:
        for level, color in sorted(_LEVEL_COLORS.items(), reverse=True):
            if levelno >= level:
                return color
        return self.color

    @override
    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_with_prefix(
                self.prefix,
                self.format(record),
                self._color_for(record.levelno),
                width=self.width,
            )
        except Exception:
            self.handleError(record)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
