"""
JSON reporter.

One document per scan: tool and scan metadata, a summary block, the ranked
findings with their source-to-sink paths, and per-unit errors.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any

from orthrus.models.finding import Finding, ScanResult
from orthrus.reporting.base import BaseReporter, ReporterRegistry

REPORT_SCHEMA_VERSION = 1


def _iso(value: Any) -> Any:
    return value.isoformat() if value is not None else None


@ReporterRegistry.register("json")
class JSONReporter(BaseReporter):
    """Machine-readable report for scripts and CI."""

    file_extension = ".json"

    def generate(self, scan_result: ScanResult) -> str:
        findings = self.filter_findings(scan_result.findings)

        document: dict[str, Any] = {
            "schema_version": REPORT_SCHEMA_VERSION,
            "metadata": self._metadata(scan_result),
            "summary": self._summary(scan_result, findings),
            "findings": [self._finding(f) for f in findings],
            "errors": list(scan_result.errors),
        }
        if scan_result.warnings:
            document["warnings"] = list(scan_result.warnings)

        return json.dumps(document, indent=2, default=str)

    def _metadata(self, scan_result: ScanResult) -> dict[str, Any]:
        return {
            "tool": {"name": self.metadata.tool_name, "version": self.metadata.tool_version},
            "scan": {
                "id": scan_result.scan_id,
                "repository": scan_result.repository,
                "status": scan_result.status,
                "started_at": _iso(scan_result.started_at),
                "completed_at": _iso(scan_result.completed_at),
                "duration_seconds": scan_result.duration_seconds,
                "rules_loaded": scan_result.rules_loaded,
            },
            "generated_at": _iso(self.metadata.generated_at),
        }

    @staticmethod
    def _summary(scan_result: ScanResult, findings: list[Finding]) -> dict[str, Any]:
        # Counts describe the findings in this report, after filtering
        return {
            "files_scanned": scan_result.files_scanned,
            "lines_scanned": scan_result.lines_scanned,
            "total_findings": len(findings),
            "by_severity": dict(Counter(f.severity.value for f in findings)),
            "by_rule": dict(Counter(f.rule_id for f in findings)),
            "tagging": {
                "sources": scan_result.sources_found,
                "sinks": scan_result.sinks_found,
                "sanitizers": scan_result.sanitizers_found,
            },
            "errors": len(scan_result.errors),
            "phase_timings_ms": scan_result.phase_timings,
        }

    def _finding(self, finding: Finding) -> dict[str, Any]:
        entry = finding.to_dict()
        for end, step in (("source", finding.source), ("sink", finding.sink)):
            entry[end] = {
                "file": str(step.location.file_path),
                "line": step.location.line,
                "description": step.description,
            }

        if not self.config.include_trace:
            entry.pop("path")
        elif not self.config.include_code_snippets:
            for step in entry["path"]:
                step["code_snippet"] = None

        if finding.cwe:
            entry["cwe_description"] = finding.cwe_description
        return entry
