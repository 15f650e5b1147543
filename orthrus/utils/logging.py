"""
Structured logging for Orthrus SAST.

Provides:
- Rich console output (stderr, so reports on stdout stay clean)
- Optional JSON lines for machine parsing
- Rotating file logs
- Component loggers that append key=value context to every message
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

# Diagnostics go to stderr; stdout is reserved for report output.
console = Console(stderr=True)

ROOT_LOGGER = "orthrus"
DEFAULT_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        return json.dumps(log_data, default=str)


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_format: bool = False,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the `orthrus` logger hierarchy.

    Args:
        level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for a rotating log file (always DEBUG)
        json_format: Emit JSON lines instead of Rich output
        max_file_size_mb: Size at which the log file rotates
        backup_count: Number of rotated files to keep

    Returns:
        The configured `orthrus` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else _level(level))
    logger.handlers.clear()

    if json_format:
        console_handler: logging.Handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))

    console_handler.setLevel(_level(level))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(DEFAULT_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


class ComponentLogger:
    """
    Logger bound to one component of the scanner.

    Keyword arguments passed to the logging methods are rendered as
    ` | key=value` pairs and attached to the record as `context`.
    """

    def __init__(self, component: str, parent: Optional[str] = None):
        self.component = component
        name = f"{ROOT_LOGGER}.{parent}.{component}" if parent else f"{ROOT_LOGGER}.{component}"
        self._logger = logging.getLogger(name)

    def _format_message(self, msg: str, **context: Any) -> str:
        if context:
            return msg + " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return msg

    def _add_context(self, **context: Any) -> dict[str, Any]:
        return {"component": self.component, **context}

    def _log(self, level: int, msg: str, exc: Optional[BaseException] = None, **context: Any) -> None:
        self._logger.log(
            level,
            self._format_message(msg, **context),
            exc_info=exc,
            extra={"context": self._add_context(**context)},
        )

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def debug(self, msg: str, **context: Any) -> None:
        self._log(logging.DEBUG, msg, **context)

    def info(self, msg: str, **context: Any) -> None:
        self._log(logging.INFO, msg, **context)

    def warning(self, msg: str, **context: Any) -> None:
        self._log(logging.WARNING, msg, **context)

    def error(self, msg: str, exc: Optional[BaseException] = None, **context: Any) -> None:
        """Log an error, with traceback when `exc` is given."""
        self._log(logging.ERROR, msg, exc, **context)

    def critical(self, msg: str, exc: Optional[BaseException] = None, **context: Any) -> None:
        self._log(logging.CRITICAL, msg, exc, **context)


class ScanLogger(ComponentLogger):
    """Logger for one scan run; every record carries the scan id."""

    def __init__(self, scan_id: str):
        super().__init__("scan")
        self.scan_id = scan_id

    def _add_context(self, **context: Any) -> dict[str, Any]:
        return {"scan_id": self.scan_id, **super()._add_context(**context)}

    def phase_start(self, phase: str, **context: Any) -> None:
        self.info(f"Starting phase: {phase}", phase=phase, **context)

    def phase_complete(self, phase: str, duration_ms: float, **context: Any) -> None:
        self.info(
            f"Completed phase: {phase}",
            phase=phase,
            duration_ms=round(duration_ms, 2),
            **context,
        )

    def unit_failed(self, file: str, error: str, line: Optional[int] = None) -> None:
        """Log a unit that was skipped; the scan continues."""
        self.warning("Unit skipped", file=file, line=line, error=error)

    def finding(self, rule_id: str, severity: str, file: str, line: int, **context: Any) -> None:
        self.debug(f"Finding: {rule_id}", severity=severity, file=file, line=line, **context)


def get_logger(component: str, parent: Optional[str] = None) -> ComponentLogger:
    """Get a component logger, e.g. `get_logger("builder", parent="analysis")`."""
    return ComponentLogger(component, parent)


def get_scan_logger(scan_id: str) -> ScanLogger:
    return ScanLogger(scan_id)
