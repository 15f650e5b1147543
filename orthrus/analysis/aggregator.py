"""
Finding aggregation across units.

Collects findings as units complete, collapses duplicates (same rule, same
sink span) and returns them ranked for reporting. The aggregator is fed
from a single thread; it holds no locks.
"""

from __future__ import annotations

from typing import Iterable

from orthrus.models.finding import Finding, UnitResult


def rank_key(finding: Finding) -> tuple[int, str, int, int, str]:
    """Most severe first, then file, line and rule id."""
    return (
        finding.severity.rank,
        str(finding.file_path),
        finding.line_start,
        finding.line_end,
        finding.rule_id,
    )


class FindingAggregator:
    """Deduplicates and ranks findings."""

    def __init__(self) -> None:
        self._best: dict[tuple[str, str, int, int], Finding] = {}
        self.received = 0

    def __len__(self) -> int:
        return len(self._best)

    def add(self, findings: Iterable[Finding]) -> None:
        """Keep, per dedup key, the finding with the highest confidence."""
        for finding in findings:
            self.received += 1
            key = finding.dedup_key
            kept = self._best.get(key)
            if kept is None or finding.confidence > kept.confidence:
                self._best[key] = finding

    def add_result(self, result: UnitResult) -> None:
        self.add(result.findings)

    @property
    def duplicates(self) -> int:
        return self.received - len(self._best)

    def results(self) -> list[Finding]:
        """Deduplicated findings in report order."""
        return sorted(self._best.values(), key=rank_key)
