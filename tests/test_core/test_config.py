"""Tests for configuration loading."""

import os
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from orthrus.core.config import (
    AnalysisConfig,
    OrthrusConfig,
    PROJECT_CONFIG_NAME,
    ReportingConfig,
    _deep_merge,
    _flatten_cli_args,
    get_default_config,
    validate_config,
)
from orthrus.core.errors import ConfigError


@pytest.fixture
def isolated(temp_dir, monkeypatch):
    """Project and user config paths with no ORTHRUS_* environment."""
    for key in list(os.environ):
        if key.startswith("ORTHRUS_"):
            monkeypatch.delenv(key)
    project = temp_dir / "project"
    project.mkdir()
    return project, temp_dir / "user-config.yml"


class TestDefaults:
    """Test default configuration values."""

    def test_default_config(self):
        config = get_default_config()

        assert config.analysis.workers == 1
        assert config.analysis.strict is False
        assert config.analysis.languages == ["auto"]
        assert "**/node_modules/**" in config.analysis.exclude_patterns
        assert config.rules.include_defaults is True
        assert config.reporting.formats == ["console"]
        assert config.reporting.min_severity == "info"
        assert config.logging.level == "INFO"


class TestValidation:
    """Test field validators."""

    def test_workers_must_be_positive(self):
        with pytest.raises(ValidationError, match="workers must be at least 1"):
            AnalysisConfig(workers=0)

    def test_languages_normalized(self):
        assert AnalysisConfig(languages=[" Python", "JAVA", ""]).languages == ["python", "java"]

    def test_invalid_format(self):
        with pytest.raises(ValidationError, match="Invalid format"):
            ReportingConfig(formats=["html"])

    def test_severity_lowercased(self):
        assert ReportingConfig(min_severity="HIGH").min_severity == "high"

    def test_invalid_severity(self):
        with pytest.raises(ValidationError, match="Invalid severity"):
            ReportingConfig(min_severity="urgent")

    def test_confidence_range(self):
        with pytest.raises(ValidationError, match="min_confidence"):
            ReportingConfig(min_confidence=1.5)

    def test_disabled_rules_uppercased(self):
        config = OrthrusConfig(rules={"disabled": ["sqli", "Xss"]})
        assert config.rules.disabled == ["SQLI", "XSS"]


class TestLoad:
    """Test layered loading."""

    def test_project_file(self, isolated):
        """Should read .orthrus.yml from the project directory."""
        project, user = isolated
        (project / PROJECT_CONFIG_NAME).write_text(yaml.dump({
            "analysis": {"workers": 3, "exclude_patterns": ["**/tests/**"]},
            "reporting": {"formats": ["json", "sarif"]},
        }))

        config = OrthrusConfig.load(project_path=project, user_config_path=user)

        assert config.analysis.workers == 3
        assert config.analysis.exclude_patterns == ["**/tests/**"]
        assert config.reporting.formats == ["json", "sarif"]

    def test_project_overrides_user(self, isolated):
        project, user = isolated
        user.write_text(yaml.dump({"analysis": {"workers": 2, "strict": True}}))
        (project / PROJECT_CONFIG_NAME).write_text(yaml.dump({"analysis": {"workers": 5}}))

        config = OrthrusConfig.load(project_path=project, user_config_path=user)

        assert config.analysis.workers == 5
        assert config.analysis.strict is True

    def test_environment_overrides_files(self, isolated, monkeypatch):
        project, user = isolated
        (project / PROJECT_CONFIG_NAME).write_text(yaml.dump({"analysis": {"workers": 5}}))
        monkeypatch.setenv("ORTHRUS_ANALYSIS__WORKERS", "7")

        config = OrthrusConfig.load(project_path=project, user_config_path=user)

        assert config.analysis.workers == 7

    def test_cli_overrides_everything(self, isolated, monkeypatch):
        """Should give command-line arguments the last word."""
        project, user = isolated
        (project / PROJECT_CONFIG_NAME).write_text(yaml.dump({"analysis": {"workers": 5}}))
        monkeypatch.setenv("ORTHRUS_ANALYSIS__WORKERS", "7")

        config = OrthrusConfig.load(
            cli_args={"workers": 2, "format": "sarif", "verbose": True, "disable": ("csrf",)},
            project_path=project,
            user_config_path=user,
        )

        assert config.analysis.workers == 2
        assert config.reporting.formats == ["sarif"]
        assert config.logging.level == "DEBUG"
        assert config.rules.disabled == ["CSRF"]

    def test_non_mapping_file_rejected(self, isolated):
        project, user = isolated
        (project / PROJECT_CONFIG_NAME).write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="mapping"):
            OrthrusConfig.load(project_path=project, user_config_path=user)

    def test_invalid_yaml_rejected(self, isolated):
        project, user = isolated
        (project / PROJECT_CONFIG_NAME).write_text("analysis: [unclosed\n")

        with pytest.raises(ConfigError, match="invalid YAML"):
            OrthrusConfig.load(project_path=project, user_config_path=user)

    def test_round_trip_yaml(self, isolated, temp_dir):
        """Should write a file that loads back to the same values."""
        project, user = isolated
        config = OrthrusConfig(analysis={"workers": 4}, reporting={"min_severity": "high"})
        config.to_yaml(project / PROJECT_CONFIG_NAME)

        loaded = OrthrusConfig.load(project_path=project, user_config_path=user)

        assert loaded.analysis.workers == 4
        assert loaded.reporting.min_severity == "high"
        assert loaded.reporting.output_dir == Path("orthrus-output")


class TestHelpers:
    """Test merging and CLI flattening."""

    def test_deep_merge(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        merged = _deep_merge(base, {"a": {"y": 3}, "c": 4})

        assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
        assert base["a"]["y"] == 2

    def test_flatten_cli_args(self):
        """Should nest flat options and drop unset ones."""
        flat = _flatten_cli_args({
            "languages": "python,java",
            "exclude": ("**/gen/**",),
            "min_confidence": 0.5,
            "no_default_rules": True,
            "strict": False,
            "rules": ("extra.yml",),
            "quiet": None,
            "unknown": "x",
        })

        assert flat == {
            "analysis": {"languages": ["python", "java"], "exclude_patterns": ["**/gen/**"]},
            "reporting": {"min_confidence": 0.5},
            "rules": {"include_defaults": False, "catalogues": [Path("extra.yml")]},
        }


class TestValidateConfig:
    """Test warnings for suspicious settings."""

    def test_clean_config(self):
        assert validate_config(get_default_config()) == []

    def test_warnings(self, temp_dir):
        config = OrthrusConfig(
            analysis={"workers": 4, "strict": True},
            rules={"include_defaults": False, "catalogues": [str(temp_dir / "missing.yml")]},
            reporting={"min_confidence": 0.9},
        )
        warnings = validate_config(config)

        assert any("Rule catalogue not found" in w for w in warnings)
        assert any("Strict mode" in w for w in warnings)
        assert any("min_confidence" in w for w in warnings)

    def test_no_rules_configured(self):
        config = OrthrusConfig(rules={"include_defaults": False})
        assert "Default rules disabled and no catalogues configured" in validate_config(config)
