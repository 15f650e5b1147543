"""
SARIF 2.1.0 Reporter for Orthrus SAST.

Generates Static Analysis Results Interchange Format (SARIF)
for integration with GitHub, Azure DevOps, VS Code, and other tools.
"""

from __future__ import annotations

import json
from typing import Any

from orthrus.models.base import get_cwe_description, severity_to_sarif
from orthrus.models.finding import Finding, ScanResult, TraceStep
from orthrus.reporting.base import BaseReporter, ReporterRegistry
from orthrus.rules.ruleset import Rule


@ReporterRegistry.register("sarif")
class SARIFReporter(BaseReporter):
    """
    SARIF 2.1.0 format reporter.

    Produces reports compliant with the SARIF 2.1.0 specification
    for integration with security tools and CI/CD pipelines.
    """

    SARIF_VERSION = "2.1.0"
    SARIF_SCHEMA = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json"

    file_extension = ".sarif"

    def generate(self, scan_result: ScanResult) -> str:
        """Generate SARIF report."""
        sarif = {
            "$schema": self.SARIF_SCHEMA,
            "version": self.SARIF_VERSION,
            "runs": [self._create_run(scan_result)],
        }

        return json.dumps(sarif, indent=2, default=str)

    def _create_run(self, scan_result: ScanResult) -> dict[str, Any]:
        """Create a SARIF run object."""
        findings = self.filter_findings(scan_result.findings)

        run: dict[str, Any] = {
            "tool": self._create_tool(findings),
            "results": [self._create_result(f) for f in findings],
            "invocations": [self._create_invocation(scan_result)],
        }

        if findings:
            run["artifacts"] = self._create_artifacts(findings)

        return run

    def _create_tool(self, findings: list[Finding]) -> dict[str, Any]:
        """Create SARIF tool object."""
        return {
            "driver": {
                "name": self.metadata.tool_name,
                "version": self.metadata.tool_version,
                "informationUri": self.metadata.information_uri,
                "rules": self._create_rules(findings),
                "properties": {
                    "tags": ["security", "sast", "taint-analysis"],
                },
            }
        }

    def _create_rules(self, findings: list[Finding]) -> list[dict[str, Any]]:
        """
        Create SARIF rule descriptors.

        Uses the rule set when the reporter has one; otherwise describes only
        the rules that produced findings.
        """
        if self.rules is not None:
            return [self._rule_descriptor(rule) for rule in self.rules]

        descriptors: dict[str, dict[str, Any]] = {}
        for finding in findings:
            if finding.rule_id in descriptors:
                continue
            descriptor: dict[str, Any] = {
                "id": finding.rule_id,
                "name": finding.title,
                "shortDescription": {"text": finding.title},
                "defaultConfiguration": {"level": severity_to_sarif(finding.severity)},
            }
            if finding.remediation:
                descriptor["help"] = {"text": finding.remediation}
            if finding.cwe:
                descriptor["properties"] = {"cwe": [finding.cwe]}
            descriptors[finding.rule_id] = descriptor
        return list(descriptors.values())

    def _rule_descriptor(self, rule: Rule) -> dict[str, Any]:
        descriptor: dict[str, Any] = {
            "id": rule.id,
            "name": rule.title,
            "shortDescription": {"text": rule.title},
            "fullDescription": {"text": rule.description or rule.title},
            "defaultConfiguration": {"level": severity_to_sarif(rule.severity)},
        }
        if rule.remediation:
            descriptor["help"] = {"text": rule.remediation}

        properties: dict[str, Any] = {"severity": rule.severity.value}
        if rule.cwe:
            properties["cwe"] = [rule.cwe]
            properties["tags"] = [get_cwe_description(rule.cwe)]
        if rule.owasp:
            properties["owasp"] = [rule.owasp]
        descriptor["properties"] = properties
        return descriptor

    def _create_result(self, finding: Finding) -> dict[str, Any]:
        """Create a SARIF result from a finding."""
        result: dict[str, Any] = {
            "ruleId": finding.rule_id,
            "level": severity_to_sarif(finding.severity),
            "message": {
                "text": finding.message or finding.title,
            },
            "locations": [self._create_location(finding.sink, f"Sink: {finding.sink.description}")],
            "fingerprints": {
                "primaryLocationLineHash": finding.id,
            },
            "properties": {
                "confidence": round(finding.confidence, 3),
                "confidenceLevel": finding.confidence_level.value,
                "interproceduralHops": finding.interprocedural_hops,
            },
        }

        if self.config.include_trace:
            result["codeFlows"] = [self._create_code_flow(finding)]

        result["relatedLocations"] = [
            dict(self._create_location(finding.source, f"source: {finding.source.description}"), id=0),
            dict(self._create_location(finding.sink, f"sink: {finding.sink.description}"), id=1),
        ]

        return result

    def _create_location(self, step: TraceStep, message: str) -> dict[str, Any]:
        """Create a location for one trace step."""
        location = step.location
        region: dict[str, Any] = {
            "startLine": location.line,
            "startColumn": location.column or 1,
        }
        if location.end_line is not None:
            region["endLine"] = location.end_line
        if location.end_column is not None:
            region["endColumn"] = location.end_column

        return {
            "physicalLocation": {
                "artifactLocation": {
                    "uri": location.file_path.as_posix(),
                },
                "region": region,
            },
            "message": {"text": message},
        }

    def _create_code_flow(self, finding: Finding) -> dict[str, Any]:
        """Create a code flow from the path, source first."""
        thread_flow_locations = []

        for step in finding.path:
            location = self._create_location(step, step.description)
            if self.config.include_code_snippets and step.code_snippet:
                location["physicalLocation"]["region"]["snippet"] = {"text": step.code_snippet}
            entry: dict[str, Any] = {"location": location, "kinds": [step.step_type]}
            if step.interprocedural:
                entry["properties"] = {"interprocedural": True}
            thread_flow_locations.append(entry)

        return {
            "threadFlows": [{
                "locations": thread_flow_locations,
            }],
        }

    def _create_invocation(self, scan_result: ScanResult) -> dict[str, Any]:
        """Create SARIF invocation object."""
        invocation: dict[str, Any] = {
            "executionSuccessful": scan_result.status == "completed",
            "startTimeUtc": scan_result.started_at.isoformat() if scan_result.started_at else None,
            "endTimeUtc": scan_result.completed_at.isoformat() if scan_result.completed_at else None,
            "properties": {
                "filesScanned": scan_result.files_scanned,
                "linesScanned": scan_result.lines_scanned,
                "sourcesFound": scan_result.sources_found,
                "sinksFound": scan_result.sinks_found,
                "sanitizersFound": scan_result.sanitizers_found,
            },
        }

        if scan_result.errors:
            invocation["toolExecutionNotifications"] = [
                {
                    "level": "error",
                    "message": {"text": f"{err.get('type', 'Error')}: {err.get('error', '')}"},
                    "locations": [{
                        "physicalLocation": {
                            "artifactLocation": {"uri": str(err.get("file", ""))},
                            "region": {"startLine": err.get("line") or 1},
                        },
                    }],
                }
                for err in scan_result.errors
            ]

        return invocation

    def _create_artifacts(self, findings: list[Finding]) -> list[dict[str, Any]]:
        """Create artifacts list from findings."""
        seen_files: set[str] = set()
        artifacts = []

        for finding in findings:
            for step in (finding.sink, finding.source):
                path = step.location.file_path.as_posix()
                if path not in seen_files:
                    seen_files.add(path)
                    artifacts.append({"location": {"uri": path}})

        return artifacts
