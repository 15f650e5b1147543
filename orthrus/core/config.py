"""
Hierarchical configuration management for Orthrus SAST.

Configuration priority (highest to lowest):
1. CLI arguments
2. Environment variables (ORTHRUS_*, nested with "__")
3. Project config (.orthrus.yml)
4. User config (~/.orthrus/config.yml)
5. Default values
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from orthrus.core.errors import ConfigError

PROJECT_CONFIG_NAME = ".orthrus.yml"
VALID_FORMATS = {"json", "sarif", "console"}
VALID_SEVERITIES = {"critical", "high", "medium", "low", "info"}


class AnalysisConfig(BaseModel):
    """Configuration for unit discovery and the scan pipeline."""

    languages: list[str] = Field(default_factory=lambda: ["auto"])
    exclude_patterns: list[str] = Field(
        default_factory=lambda: [
            "**/node_modules/**",
            "**/vendor/**",
            "**/.git/**",
            "**/dist/**",
            "**/build/**",
            "**/__pycache__/**",
            "**/.venv/**",
            "**/*.min.js",
        ]
    )
    max_file_size_mb: int = 5
    max_files: int = 10000
    follow_symlinks: bool = False
    workers: int = 1
    strict: bool = False

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be at least 1")
        return v

    @field_validator("languages")
    @classmethod
    def validate_languages(cls, v: list[str]) -> list[str]:
        return [lang.strip().lower() for lang in v if lang.strip()]


class RulesConfig(BaseModel):
    """Configuration for rule catalogue loading."""

    catalogues: list[Path] = Field(default_factory=list)
    include_defaults: bool = True
    disabled: list[str] = Field(default_factory=list)

    @field_validator("disabled")
    @classmethod
    def validate_disabled(cls, v: list[str]) -> list[str]:
        return [rule_id.upper() for rule_id in v]


class ReportingConfig(BaseModel):
    """Configuration for report generation."""

    formats: list[str] = Field(default_factory=lambda: ["console"])
    output_dir: Path = Path("./orthrus-output")
    min_severity: str = "info"
    min_confidence: float = 0.0
    include_trace: bool = True
    include_code_snippets: bool = True

    @field_validator("output_dir", mode="before")
    @classmethod
    def validate_output_dir(cls, v: Any) -> Path:
        if isinstance(v, str):
            return Path(v)
        return v

    @field_validator("formats")
    @classmethod
    def validate_formats(cls, v: list[str]) -> list[str]:
        for fmt in v:
            if fmt not in VALID_FORMATS:
                raise ValueError(f"Invalid format: {fmt}. Must be one of {VALID_FORMATS}")
        return v

    @field_validator("min_severity")
    @classmethod
    def validate_min_severity(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in VALID_SEVERITIES:
            raise ValueError(f"Invalid severity: {v}. Must be one of {VALID_SEVERITIES}")
        return v_lower

    @field_validator("min_confidence")
    @classmethod
    def validate_min_confidence(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("min_confidence must be between 0.0 and 1.0")
        return v


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    file: Optional[Path] = None
    json_format: bool = False
    max_file_size_mb: int = 10
    backup_count: int = 5

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class OrthrusConfig(BaseSettings):
    """
    Main configuration model with hierarchical loading.

    Environment variables use the ORTHRUS_ prefix and "__" for nesting,
    e.g. ORTHRUS_ANALYSIS__WORKERS=4.
    """

    model_config = SettingsConfigDict(
        env_prefix="ORTHRUS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    project_name: str = "orthrus-scan"

    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(
        cls,
        cli_args: Optional[dict[str, Any]] = None,
        project_path: Optional[Path] = None,
        user_config_path: Optional[Path] = None,
    ) -> OrthrusConfig:
        """
        Load configuration from all sources.

        Args:
            cli_args: Flat command-line arguments (highest priority)
            project_path: Directory holding .orthrus.yml (default: cwd)
            user_config_path: Override for ~/.orthrus/config.yml

        Returns:
            Merged configuration
        """
        config_dict: dict[str, Any] = {}
        project_path = project_path or Path.cwd()
        user_config_path = user_config_path or Path.home() / ".orthrus" / "config.yml"

        for path in (user_config_path, project_path / PROJECT_CONFIG_NAME):
            if path.is_file():
                config_dict = _deep_merge(config_dict, _read_yaml(path))

        # Environment overrides files; CLI arguments override both.
        config_dict = _deep_merge(config_dict, _env_overrides())

        if cli_args:
            config_dict = _deep_merge(config_dict, _flatten_cli_args(cli_args))

        return cls(**config_dict)

    def to_yaml(self, path: Path) -> None:
        """Write configuration to YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top-level YAML value must be a mapping")
    return data


def _env_overrides() -> dict[str, Any]:
    """Values pydantic-settings resolves from ORTHRUS_* variables alone."""
    env_only = OrthrusConfig()
    return env_only.model_dump(exclude_defaults=True)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary with values to override

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _flatten_cli_args(args: dict[str, Any]) -> dict[str, Any]:
    """
    Convert flat CLI arguments to the nested config structure.

    Examples:
        {"workers": 4} -> {"analysis": {"workers": 4}}
        {"format": "json"} -> {"reporting": {"formats": ["json"]}}
    """
    result: dict[str, Any] = {}

    mappings = {
        "verbose": ("logging", "level", lambda v: "DEBUG" if v else None),
        "quiet": ("logging", "level", lambda v: "ERROR" if v else None),
        "log_file": ("logging", "file", Path),
        "json_logs": ("logging", "json_format", lambda v: True if v else None),
        "format": ("reporting", "formats", lambda v: [v] if v else None),
        "min_severity": ("reporting", "min_severity", str),
        "min_confidence": ("reporting", "min_confidence", float),
        "languages": ("analysis", "languages", lambda v: v.split(",") if v else None),
        "exclude": ("analysis", "exclude_patterns", lambda v: list(v) if v else None),
        "workers": ("analysis", "workers", int),
        "strict": ("analysis", "strict", lambda v: True if v else None),
        "rules": ("rules", "catalogues", lambda v: [Path(p) for p in v] if v else None),
        "no_default_rules": ("rules", "include_defaults", lambda v: False if v else None),
        "disable": ("rules", "disabled", lambda v: list(v) if v else None),
    }

    for key, value in args.items():
        if value is None or key not in mappings:
            continue
        section, subkey, transform = mappings[key]
        transformed = transform(value)
        if transformed is not None:
            result.setdefault(section, {})[subkey] = transformed

    return result


def get_default_config() -> OrthrusConfig:
    """Get configuration with all defaults."""
    return OrthrusConfig()


def validate_config(config: OrthrusConfig) -> list[str]:
    """
    Check a configuration for suspicious combinations.

    Returns:
        List of warning messages (empty if all valid)
    """
    warnings: list[str] = []

    if not config.rules.include_defaults and not config.rules.catalogues:
        warnings.append("Default rules disabled and no catalogues configured")

    for catalogue in config.rules.catalogues:
        if not catalogue.exists():
            warnings.append(f"Rule catalogue not found: {catalogue}")

    if config.analysis.strict and config.analysis.workers > 1:
        warnings.append("Strict mode with multiple workers: the first graph defect aborts the scan")

    if config.reporting.min_confidence > 0.8:
        warnings.append(
            f"min_confidence={config.reporting.min_confidence} hides all but the shortest paths"
        )

    return warnings
