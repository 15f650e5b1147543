"""Utility modules for logging."""

from orthrus.utils.logging import ComponentLogger, setup_logging

__all__ = ["setup_logging", "ComponentLogger"]
