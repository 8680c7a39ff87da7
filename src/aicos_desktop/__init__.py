"""Desktop shell supervisor for the AI Code Switch backend server."""

__version__ = "0.1.0"
