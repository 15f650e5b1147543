"""Tests for CLI commands."""

from __future__ import annotations

import json
import os

import pytest
import yaml
from click.testing import CliRunner

from orthrus import __version__
from orthrus.cli.commands import EXIT_CONFIG_ERROR, EXIT_FINDINGS, EXIT_SUCCESS, cli


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, temp_dir):
    """Keep the user's config file and ORTHRUS_* variables out of the tests."""
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("ORTHRUS_"):
            monkeypatch.delenv(key)
    return home


BAD_CATALOGUE = """
rules:
  - id: DEMO
    title: Demo
    severity: urgent
    sources: [source]
    sinks: [sink]
"""

NO_REMEDIATION = """
rules:
  - id: DEMO
    title: Demo
    severity: low
    sources: [source]
    sinks: [sink]
"""


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "static taint analysis" in result.output

    def test_cli_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_version_command(self, runner):
        """Should show version and grammar package versions."""
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "Orthrus SAST" in result.output
        assert "System Information" in result.output

    def test_languages(self, runner):
        result = runner.invoke(cli, ["languages"])
        assert result.exit_code == 0
        for language in ("python", "javascript", "java"):
            assert language in result.output
        assert ".java" in result.output


class TestScanCommand:
    """Test the scan command."""

    def test_json_report_to_file(self, runner, sample_python_file, temp_dir):
        """Should write a JSON report with the injection finding."""
        output = temp_dir / "out" / "report.json"
        result = runner.invoke(cli, ["-q", "scan", str(sample_python_file), "-f", "json", "-o", str(output)])

        assert result.exit_code == EXIT_SUCCESS, result.output
        report = json.loads(output.read_text())
        assert [f["rule_id"] for f in report["findings"]] == ["SQLI"]
        assert report["findings"][0]["line_start"] == 11
        assert report["summary"]["files_scanned"] == 1

    def test_sarif_report_to_file(self, runner, sample_javascript_file, temp_dir):
        output = temp_dir / "report.sarif"
        result = runner.invoke(cli, ["scan", str(sample_javascript_file), "-f", "sarif", "-o", str(output)])

        assert result.exit_code == EXIT_SUCCESS, result.output
        sarif = json.loads(output.read_text())
        assert [r["ruleId"] for r in sarif["runs"][0]["results"]] == ["SSRF"]
        assert "Results written to" in result.output

    def test_fail_on_threshold(self, runner, sample_python_file):
        """Should exit 1 when a finding meets the --fail-on severity."""
        result = runner.invoke(cli, ["-q", "scan", str(sample_python_file), "--fail-on", "high"])
        assert result.exit_code == EXIT_FINDINGS

    def test_fail_on_below_threshold(self, runner, sample_javascript_file):
        """Should exit 0 when findings are less severe than --fail-on."""
        result = runner.invoke(cli, ["-q", "scan", str(sample_javascript_file), "--fail-on", "critical"])
        assert result.exit_code == EXIT_SUCCESS

    def test_clean_file(self, runner, clean_python_file):
        result = runner.invoke(cli, ["scan", str(clean_python_file), "--fail-on", "low"])

        assert result.exit_code == EXIT_SUCCESS
        assert "No vulnerabilities found!" in result.output

    def test_disabled_rule(self, runner, sample_python_file):
        result = runner.invoke(
            cli, ["-q", "scan", str(sample_python_file), "--disable", "SQLI", "--fail-on", "low"]
        )
        assert result.exit_code == EXIT_SUCCESS

    def test_directory_scan(self, runner, vulnerable_app, temp_dir):
        """Should report the planted flows of the sample application."""
        output = temp_dir / "report.json"
        result = runner.invoke(cli, ["-q", "scan", str(vulnerable_app), "-f", "json", "-o", str(output)])

        assert result.exit_code == EXIT_SUCCESS, result.output
        report = json.loads(output.read_text())
        assert report["summary"]["by_rule"] == {"SQLI": 3, "SSRF": 2}

    def test_dry_run(self, runner, vulnerable_app):
        """Should list what would be scanned without analyzing."""
        result = runner.invoke(cli, ["scan", str(vulnerable_app), "--dry-run"])

        assert result.exit_code == EXIT_SUCCESS
        assert "Files to Scan (3)" in result.output
        assert "Dry run complete" in result.output

    def test_missing_path(self, runner, temp_dir):
        result = runner.invoke(cli, ["scan", str(temp_dir / "missing")])
        assert result.exit_code != 0

    def test_invalid_rule_catalogue(self, runner, sample_python_file, temp_dir):
        """Should exit 2 when an extra catalogue is malformed."""
        catalogue = temp_dir / "bad.yml"
        catalogue.write_text(BAD_CATALOGUE)

        result = runner.invoke(cli, ["scan", str(sample_python_file), "-r", str(catalogue)])

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Rule error" in result.output

    def test_invalid_project_config(self, runner, sample_python_file, temp_dir):
        """Should exit 2 when .orthrus.yml is not a mapping."""
        (temp_dir / ".orthrus.yml").write_text("- just\n- a list\n")

        result = runner.invoke(cli, ["scan", str(sample_python_file)])

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Configuration error" in result.output

    def test_project_config_applies(self, runner, sample_python_file, temp_dir):
        """Should pick up the format from the project configuration."""
        (temp_dir / ".orthrus.yml").write_text(yaml.safe_dump({"reporting": {"formats": ["json"]}}))
        output = temp_dir / "report.json"

        result = runner.invoke(cli, ["-q", "scan", str(sample_python_file), "-o", str(output)])

        assert result.exit_code == EXIT_SUCCESS, result.output
        assert json.loads(output.read_text())["summary"]["total_findings"] == 1


class TestRulesCommands:
    """Test the rules command group."""

    def test_list(self, runner):
        result = runner.invoke(cli, ["rules", "list"])
        assert result.exit_code == 0
        assert "SQLI" in result.output
        assert "SSRF" in result.output

    def test_list_without_defaults_needs_catalogue(self, runner):
        result = runner.invoke(cli, ["rules", "list", "--no-default-rules"])
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_validate_default_catalogue(self, runner):
        from orthrus.rules.loader import DEFAULT_CATALOGUE

        result = runner.invoke(cli, ["rules", "validate", str(DEFAULT_CATALOGUE)])
        assert result.exit_code == 0
        assert "✓" in result.output

    def test_validate_reports_problems(self, runner, temp_dir):
        """Should exit 2 and name each problem."""
        missing_text = temp_dir / "lax.yml"
        missing_text.write_text(NO_REMEDIATION)

        result = runner.invoke(cli, ["rules", "validate", str(missing_text)])

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Rule 'DEMO' has no remediation text" in result.output


class TestInitCommand:
    """Test the init command."""

    def test_creates_config(self, runner, temp_dir):
        result = runner.invoke(cli, ["init", str(temp_dir)])

        assert result.exit_code == 0
        config = yaml.safe_load((temp_dir / ".orthrus.yml").read_text())
        assert config["analysis"]["workers"] == 1
        assert config["reporting"]["formats"] == ["console"]

    def test_keeps_existing_config(self, runner, temp_dir):
        """Should refuse to overwrite without --force."""
        config_path = temp_dir / ".orthrus.yml"
        config_path.write_text("analysis:\n  workers: 4\n")

        result = runner.invoke(cli, ["init", str(temp_dir)])

        assert result.exit_code == 0
        assert "already exists" in result.output
        assert "workers: 4" in config_path.read_text()

    def test_force_overwrites(self, runner, temp_dir):
        config_path = temp_dir / ".orthrus.yml"
        config_path.write_text("analysis:\n  workers: 4\n")

        result = runner.invoke(cli, ["init", str(temp_dir), "--force"])

        assert result.exit_code == 0
        assert yaml.safe_load(config_path.read_text())["analysis"]["workers"] == 1
