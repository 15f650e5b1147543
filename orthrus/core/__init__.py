"""Core module containing configuration, errors and the scan engine."""

from orthrus.core.config import OrthrusConfig
from orthrus.core.errors import (
    ConfigError,
    InternalGraphError,
    OrthrusError,
    ParseError,
    RuleLoadError,
)
from orthrus.core.progress import (
    ProgressTracker,
    ScanProgress,
    create_cli_progress_callback,
)

__all__ = [
    "OrthrusConfig",
    # Errors
    "ConfigError",
    "InternalGraphError",
    "OrthrusError",
    "ParseError",
    "RuleLoadError",
    # Progress
    "ProgressTracker",
    "ScanProgress",
    "create_cli_progress_callback",
]
