"""
Progress tracking for scan operations.

Progress updates drive the CLI progress bar; the engine reports one update
per phase change and one per completed unit.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from orthrus.utils.logging import get_logger

logger = get_logger("progress", parent="core")

# Share of overall progress owned by each phase: (start, end)
PHASE_WEIGHTS: dict[str, tuple[float, float]] = {
    "discovery": (0.0, 0.05),
    "analysis": (0.05, 0.95),
    "aggregation": (0.95, 1.0),
    "complete": (1.0, 1.0),
}


@dataclass
class ScanProgress:
    """
    Progress update for a scan operation.

    Represents the current state of a scan, suitable for display in a CLI
    progress bar.
    """

    phase: str  # "discovery", "analysis", "aggregation", "complete"
    phase_progress: float = 0.0  # 0.0 to 1.0

    message: Optional[str] = None
    current_file: Optional[str] = None
    files_processed: int = 0
    files_total: int = 0
    findings_count: int = 0

    elapsed_seconds: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "phase": self.phase,
            "phase_progress": self.phase_progress,
            "message": self.message,
            "current_file": self.current_file,
            "files_processed": self.files_processed,
            "files_total": self.files_total,
            "findings_count": self.findings_count,
            "elapsed_seconds": self.elapsed_seconds,
            "timestamp": self.timestamp.isoformat(),
        }

    @property
    def overall_progress(self) -> float:
        """Progress across all phases, 0.0 to 1.0."""
        if self.phase not in PHASE_WEIGHTS:
            return 0.0
        start, end = PHASE_WEIGHTS[self.phase]
        return start + self.phase_progress * (end - start)


class ProgressTracker:
    """Tracks scan progress and fans updates out to callbacks."""

    def __init__(self, callback: Optional[Callable[[ScanProgress], None]] = None) -> None:
        self._callbacks: list[Callable[[ScanProgress], None]] = []
        if callback:
            self._callbacks.append(callback)
        self._start_time: Optional[float] = None
        self._current: Optional[ScanProgress] = None

    def add_callback(self, callback: Callable[[ScanProgress], None]) -> None:
        self._callbacks.append(callback)

    def start(self) -> None:
        self._start_time = time.time()

    def update(self, progress: ScanProgress) -> None:
        """
        Record a progress update and notify callbacks.

        A failing callback is logged and removed; it never breaks the scan.
        """
        if self._start_time is not None:
            progress.elapsed_seconds = time.time() - self._start_time
        self._current = progress

        for callback in list(self._callbacks):
            try:
                callback(progress)
            except Exception as e:
                logger.warning("Progress callback failed, detaching it", error=str(e))
                self._callbacks.remove(callback)

    @property
    def current(self) -> Optional[ScanProgress]:
        return self._current

    @property
    def elapsed_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time


def create_cli_progress_callback(progress_bar: Any, task_id: Any) -> Callable[[ScanProgress], None]:
    """
    Create a callback for Rich progress bar updates.

    Args:
        progress_bar: Rich Progress instance
        task_id: Task ID from progress.add_task()
    """

    def callback(p: ScanProgress) -> None:
        description = f"[{p.phase}]"
        if p.message:
            description = f"{description} {p.message}"
        elif p.current_file:
            description = f"{description} {p.current_file}"
        progress_bar.update(task_id, description=description, completed=p.overall_progress * 100)

    return callback
