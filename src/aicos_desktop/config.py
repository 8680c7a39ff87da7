"""Per-user configuration for the desktop shell.

The port lives in `~/.aicodeswitch/aicodeswitch.conf` as `PORT=<integer>`.
Anything missing, unreadable, or malformed falls back to the default port.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values
from pydantic import ValidationError

from aicos_desktop.constants import (
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    CONFIG_PORT_KEY,
    DEFAULT_SERVER_PORT,
    RESOURCE_DIR_NAME,
    RESOURCE_ROOT_ENV,
    SERVER_LOG_FILE_NAME,
)
from aicos_desktop.models import DesktopConfig
from aicos_desktop.supervisor.logging import DesktopLogComponent, get_logger

logger = get_logger(DesktopLogComponent.CONFIG)


def home_dir() -> Path:
    """Resolve the user's home directory (HOME, then USERPROFILE)."""
    for var in ("HOME", "USERPROFILE"):
        value = os.environ.get(var)
        if value:
            return Path(value)
    return Path.home()


def config_dir() -> Path:
    return home_dir() / CONFIG_DIR_NAME


def config_path() -> Path:
    return config_dir() / CONFIG_FILE_NAME


def default_log_file() -> Path:
    return config_dir() / SERVER_LOG_FILE_NAME


def default_resource_root() -> Path:
    """Directory holding the bundled server, overridable via AICOS_RESOURCE_ROOT."""
    override = os.environ.get(RESOURCE_ROOT_ENV)
    if override:
        return Path(override)
    return Path(__file__).resolve().parent / RESOURCE_DIR_NAME


def load_config(file_path: Path | None = None) -> DesktopConfig:
    """Read the desktop config, falling back to defaults on any problem.

    Args:
        file_path: Path to the config file (defaults to ~/.aicodeswitch/aicodeswitch.conf)

    Returns:
        DesktopConfig instance
    """
    file_path = file_path or config_path()

    if not file_path.is_file():
        logger.debug(f"No config file at {file_path}, using default port {DEFAULT_SERVER_PORT}")
        return DesktopConfig()

    try:
        values = dotenv_values(file_path)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(
            f"Could not read {file_path} ({e}), using default port {DEFAULT_SERVER_PORT}"
        )
        return DesktopConfig()

    raw_port = values.get(CONFIG_PORT_KEY)
    if raw_port is None:
        return DesktopConfig()

    try:
        config = DesktopConfig.model_validate({"port": raw_port.strip()})
    except ValidationError:
        logger.warning(
            f"Invalid {CONFIG_PORT_KEY}={raw_port!r} in {file_path}, "
            f"using default port {DEFAULT_SERVER_PORT}"
        )
        return DesktopConfig()

    logger.info(f"Read port from config: {config.port}")
    return config


def resolve_port(file_path: Path | None = None) -> int:
    return load_config(file_path).port
