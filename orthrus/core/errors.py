"""
Exception hierarchy for Orthrus SAST.

ParseError is per-unit and never aborts a scan. RuleLoadError is fatal and
raised before any unit is scanned. InternalGraphError signals a broken
graph invariant.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class OrthrusError(Exception):
    """Base exception for Orthrus errors."""

    pass


class ParseError(OrthrusError):
    """A unit could not be turned into a program model."""

    def __init__(
        self,
        file: Union[str, Path],
        line: Optional[int],
        message: str,
    ) -> None:
        self.file = str(file)
        self.line = line
        self.message = message
        where = f"{self.file}:{line}" if line is not None else self.file
        super().__init__(f"{where}: {message}")

    def __reduce__(self):
        return (type(self), (self.file, self.line, self.message))


class RuleLoadError(OrthrusError):
    """A rule catalogue is missing, malformed or inconsistent."""

    def __init__(self, message: str, source: Optional[Union[str, Path]] = None) -> None:
        self.message = message
        self.source = str(source) if source is not None else None
        if source is not None:
            message = f"{message}\nCatalogue: {source}"
        super().__init__(message)

    def __reduce__(self):
        return (type(self), (self.message, self.source))


class InternalGraphError(OrthrusError):
    """A taint graph invariant does not hold (dangling edge or node id)."""

    def __init__(self, message: str, node_id: Optional[int] = None) -> None:
        self.message = message
        self.node_id = node_id
        if node_id is not None:
            message = f"{message} (node {node_id})"
        super().__init__(message)

    def __reduce__(self):
        return (type(self), (self.message, self.node_id))


class ConfigError(OrthrusError, ValueError):
    """A configuration file could not be read as a settings mapping."""

    pass
