"""
Scan engine.

Discovers units and runs the per-unit pipeline on a fixed-size process
pool. Results are consumed as they complete by a single aggregator.
Cancellation is cooperative: units not yet started are dropped, running
units finish.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from orthrus.analysis.aggregator import FindingAggregator
from orthrus.context.tree_sitter_parser import TreeSitterParser
from orthrus.core.config import OrthrusConfig, get_default_config
from orthrus.core.errors import InternalGraphError
from orthrus.core.pipeline import scan_unit
from orthrus.core.progress import ProgressTracker, ScanProgress
from orthrus.models.finding import ScanResult, UnitError, UnitResult
from orthrus.models.program import SourceUnit
from orthrus.rules.ruleset import RuleSet
from orthrus.utils.logging import get_logger, get_scan_logger

Target = Union[str, Path, SourceUnit]


class ScanEngine:
    """
    Runs scans with one immutable rule set.

    Example:
        engine = ScanEngine(load_rules(), config)
        result = engine.scan([Path("src")])
    """

    def __init__(
        self,
        rules: RuleSet,
        config: Optional[OrthrusConfig] = None,
        progress_callback: Optional[Callable[[ScanProgress], None]] = None,
    ) -> None:
        self.rules = rules
        self.config = config or get_default_config()
        self.workers = self.config.analysis.workers
        self.strict = self.config.analysis.strict
        self.parser = TreeSitterParser()
        self.progress = ProgressTracker(progress_callback)
        self.logger = get_logger("engine", parent="core")
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop scheduling new units; running units finish."""
        self._cancel.set()
        self.logger.info("Scan cancellation requested")

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def discover(self, targets: Iterable[Target]) -> list[SourceUnit]:
        """Expand paths into units; SourceUnit values pass through unchanged."""
        units: list[SourceUnit] = []
        paths: list[Path] = []
        for target in targets:
            if isinstance(target, SourceUnit):
                units.append(target)
            else:
                paths.append(Path(target))

        if paths:
            analysis = self.config.analysis
            units.extend(
                self.parser.discover_units(
                    paths,
                    exclude_patterns=analysis.exclude_patterns,
                    max_file_size_mb=analysis.max_file_size_mb,
                    languages=analysis.languages,
                    max_files=analysis.max_files,
                    follow_symlinks=analysis.follow_symlinks,
                )
            )
        return units

    def scan(self, targets: Iterable[Target], repository: str = "") -> ScanResult:
        """
        Scan files, directories or in-memory units.

        Per-unit failures end up in `ScanResult.errors`. In strict mode an
        InternalGraphError aborts the scan and propagates.
        """
        targets = list(targets)
        result = ScanResult(
            repository=repository or ", ".join(str(getattr(t, "path", t)) for t in targets),
            rules_loaded=len(self.rules),
        )
        scan_logger = get_scan_logger(result.scan_id)
        self.progress.start()

        phase_start = time.perf_counter()
        scan_logger.phase_start("discovery")
        self.progress.update(ScanProgress(phase="discovery", message="Discovering files"))
        units = self.discover(targets)
        result.phase_timings["discovery"] = _elapsed_ms(phase_start)
        scan_logger.phase_complete("discovery", result.phase_timings["discovery"], units=len(units))

        phase_start = time.perf_counter()
        scan_logger.phase_start("analysis", workers=self.workers)
        aggregator = FindingAggregator()
        done = 0
        for unit_result in self._run(units):
            done += 1
            result.record_unit(unit_result)
            aggregator.add_result(unit_result)
            if unit_result.error is not None:
                scan_logger.unit_failed(
                    unit_result.error.file_path, unit_result.error.message, unit_result.error.line
                )
            for finding in unit_result.findings:
                scan_logger.finding(
                    finding.rule_id, finding.severity.value, str(finding.file_path), finding.line_start
                )
            self.progress.update(
                ScanProgress(
                    phase="analysis",
                    phase_progress=done / len(units) if units else 1.0,
                    current_file=str(unit_result.file_path),
                    files_processed=done,
                    files_total=len(units),
                    findings_count=len(aggregator),
                )
            )
        result.phase_timings["analysis"] = _elapsed_ms(phase_start)
        scan_logger.phase_complete("analysis", result.phase_timings["analysis"], units=done)

        phase_start = time.perf_counter()
        self.progress.update(ScanProgress(phase="aggregation", message="Ranking findings"))
        result.findings = aggregator.results()
        result.phase_timings["aggregation"] = _elapsed_ms(phase_start)
        if aggregator.duplicates:
            scan_logger.debug("Collapsed duplicate findings", duplicates=aggregator.duplicates)

        if self.cancelled:
            skipped = len(units) - done
            result.warnings.append(f"Scan cancelled; {skipped} unit(s) not scanned")
            result.complete("cancelled")
        else:
            result.complete("completed")

        self.progress.update(
            ScanProgress(phase="complete", phase_progress=1.0, findings_count=len(result.findings))
        )
        scan_logger.info(
            "Scan finished",
            status=result.status,
            files=result.files_scanned,
            findings=len(result.findings),
            errors=len(result.errors),
        )
        return result

    def _run(self, units: list[SourceUnit]) -> Iterable[UnitResult]:
        if self.workers <= 1 or len(units) <= 1:
            for unit in units:
                if self.cancelled:
                    return
                yield scan_unit(unit, self.rules, strict=self.strict)
            return

        with ProcessPoolExecutor(max_workers=self.workers) as executor:
            futures: dict[Future, SourceUnit] = {
                executor.submit(scan_unit, unit, self.rules, self.strict): unit for unit in units
            }
            try:
                for future in as_completed(futures):
                    if self.cancelled:
                        for pending in futures:
                            pending.cancel()
                    if future.cancelled():
                        continue
                    unit = futures[future]
                    try:
                        unit_result = future.result()
                    except Exception as e:
                        if self.strict and isinstance(e, InternalGraphError):
                            raise
                        self.logger.error("Worker failed", file=unit.path, error=str(e))
                        unit_result = UnitResult(
                            file_path=unit.path,
                            language=unit.language,
                            error=UnitError(str(unit.path), type(e).__name__, str(e), phase="worker"),
                        )
                    yield unit_result
            except BaseException:
                for pending in futures:
                    pending.cancel()
                raise


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
