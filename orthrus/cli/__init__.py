"""Command-line interface for Orthrus SAST."""

from orthrus.cli.commands import cli

__all__ = ["cli"]
