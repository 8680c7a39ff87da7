"""Centralized logging for the desktop supervisor (component loggers and console routing)."""

from __future__ import annotations

import logging
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict

from aicos_desktop.utils import PrefixedLogHandler

LOGGER_NAMESPACE = "aicos.desktop"


class DesktopLogComponent(str, Enum):
    """Where a log originated (used for prefixes and per-component levels)."""

    SUPERVISOR = "supervisor"
    PROBER = "prober"
    PROCESS_CONTROL = "process_control"
    CONFIG = "config"
    SHELL = "shell"


_COMPONENT_COLOR: dict[DesktopLogComponent, str] = {
    DesktopLogComponent.SUPERVISOR: "bright_blue",
    DesktopLogComponent.PROBER: "cyan",
    DesktopLogComponent.PROCESS_CONTROL: "magenta",
    DesktopLogComponent.CONFIG: "green",
    DesktopLogComponent.SHELL: "bright_white",
}


class _DesktopLogState(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(arbitrary_types_allowed=True)

    configured: bool = False
    level: int = logging.INFO


_STATE = _DesktopLogState()


def configure_logging(*, verbose: bool = False) -> None:
    """Route every component logger to the rich console with a `[component]` prefix."""
    level = logging.DEBUG if verbose else logging.INFO
    width = max(len(c.value) for c in DesktopLogComponent)

    for component in DesktopLogComponent:
        logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{component.value}")
        logger.setLevel(level)
        logger.handlers.clear()
        handler = PrefixedLogHandler(
            prefix=component.value,
            color=_COMPONENT_COLOR.get(component, "white"),
            width=width,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    _STATE.level = level
    _STATE.configured = True


def get_logger(component: DesktopLogComponent) -> logging.Logger:
    """Get a logger for a component (do not call stdlib logging directly)."""
    logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{component.value}")
    if not _STATE.configured:
        # Avoid "No handlers could be found" warnings when logging is not configured.
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
    return logger
