"""
YAML rule catalogue loader.

A catalogue is a YAML document with a top-level `rules` list. Each entry is
validated against a pydantic schema and converted to an immutable Rule.
Loading several catalogues overlays them: a later rule replaces an earlier
rule with the same id. Any problem raises RuleLoadError; a partial rule set
is never returned.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from orthrus.core.errors import RuleLoadError
from orthrus.models.base import Severity
from orthrus.rules.ruleset import DEFAULT_MESSAGE, NodePattern, PatternTarget, Rule, RuleSet

logger = logging.getLogger(__name__)

DEFAULT_CATALOGUE = Path(__file__).parent / "defaults" / "catalogue.yaml"
SUPPORTED_LANGUAGES = {"python", "javascript", "java"}
_RULE_ID = re.compile(r"[A-Z][A-Z0-9_]*")


class PatternSpec(BaseModel):
    """Schema of one source/sink/sanitizer pattern."""

    model_config = ConfigDict(extra="forbid")

    pattern: str
    target: Literal["call", "access", "parameter", "annotation"] = "call"
    arg_count: Optional[int] = Field(default=None, ge=0)
    arguments: Optional[list[int]] = None
    literal_argument: Optional[str] = None
    languages: list[str] = Field(default_factory=list)

    @field_validator("pattern", "literal_argument")
    @classmethod
    def validate_regex(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid regular expression {v!r}: {e}") from e
        return v

    @field_validator("arguments")
    @classmethod
    def validate_arguments(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is not None and any(position < 0 for position in v):
            raise ValueError("argument positions must be >= 0")
        return v

    @field_validator("languages")
    @classmethod
    def validate_languages(cls, v: list[str]) -> list[str]:
        return _check_languages(v)


def _check_languages(v: list[str]) -> list[str]:
    lowered = [lang.lower() for lang in v]
    unknown = set(lowered) - SUPPORTED_LANGUAGES
    if unknown:
        raise ValueError(f"unsupported languages {sorted(unknown)}; expected {sorted(SUPPORTED_LANGUAGES)}")
    return lowered


def _coerce_patterns(v: Any) -> Any:
    """
    Flatten nested lists (YAML aliases of shared pattern lists) and allow
    bare strings as shorthand for call patterns.
    """
    if not isinstance(v, list):
        return v
    flat: list[Any] = []
    for item in v:
        if isinstance(item, list):
            flat.extend(_coerce_patterns(item))
        elif isinstance(item, str):
            flat.append({"pattern": item})
        else:
            flat.append(item)
    return flat


class RuleSpec(BaseModel):
    """Schema of one catalogue rule."""

    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    severity: str
    sources: list[PatternSpec] = Field(min_length=1)
    sinks: list[PatternSpec] = Field(min_length=1)
    sanitizers: list[PatternSpec] = Field(default_factory=list)
    remediation: str = ""
    description: str = ""
    message: str = DEFAULT_MESSAGE
    cwe: Optional[str] = None
    owasp: Optional[str] = None
    languages: list[str] = Field(default_factory=list)
    enabled: bool = True

    @field_validator("sources", "sinks", "sanitizers", mode="before")
    @classmethod
    def normalize_patterns(cls, v: Any) -> Any:
        return _coerce_patterns(v)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not _RULE_ID.fullmatch(v):
            raise ValueError(f"rule id {v!r} must be upper case (e.g. SQLI, PATH_TRAVERSAL)")
        return v

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        try:
            return Severity.from_string(v).value
        except ValueError:
            raise ValueError(f"invalid severity {v!r}; expected low, medium, high or critical") from None

    @field_validator("cwe")
    @classmethod
    def validate_cwe(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not re.fullmatch(r"CWE-\d+", v):
            raise ValueError(f"invalid CWE id {v!r}; expected CWE-<number>")
        return v

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        try:
            v.format(title="", rule_id="", source="", sink="", source_line=0, sink_line=0)
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"invalid message template: {e}") from e
        return v

    @field_validator("languages")
    @classmethod
    def validate_languages(cls, v: list[str]) -> list[str]:
        return _check_languages(v)

    def to_rule(self) -> Rule:
        return Rule(
            id=self.id,
            title=self.title,
            severity=Severity.from_string(self.severity),
            sources=tuple(_to_pattern(p) for p in self.sources),
            sinks=tuple(_to_pattern(p) for p in self.sinks),
            sanitizers=tuple(_to_pattern(p) for p in self.sanitizers),
            remediation=self.remediation.strip(),
            description=self.description.strip(),
            message=self.message,
            cwe=self.cwe,
            owasp=self.owasp,
            languages=tuple(self.languages),
        )


class CatalogueSpec(BaseModel):
    """Top-level catalogue document; other top-level keys hold YAML anchors."""

    model_config = ConfigDict(extra="ignore")

    version: int = 1
    rules: list[RuleSpec]


def _to_pattern(spec: PatternSpec) -> NodePattern:
    return NodePattern(
        pattern=spec.pattern,
        target=PatternTarget(spec.target),
        arg_count=spec.arg_count,
        arguments=tuple(spec.arguments) if spec.arguments is not None else None,
        literal_argument=spec.literal_argument,
        languages=tuple(spec.languages),
    )


def _format_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        where = ".".join(str(part) for part in item["loc"])
        lines.append(f"{where}: {item['msg']}")
    return "; ".join(lines)


class RuleLoader:
    """Load rule catalogues from YAML files or strings."""

    def __init__(self) -> None:
        self._cache: dict[Path, RuleSet] = {}

    def parse(self, text: str, source: Union[str, Path] = "<string>") -> RuleSet:
        """
        Parse one catalogue document.

        Raises:
            RuleLoadError: YAML, schema, regex or duplicate-id error
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise RuleLoadError(f"YAML error: {e}", source) from e

        if not isinstance(data, dict) or "rules" not in data:
            raise RuleLoadError("Catalogue must be a mapping with a 'rules' list", source)

        try:
            catalogue = CatalogueSpec.model_validate(data)
        except ValidationError as e:
            raise RuleLoadError(f"Invalid catalogue: {_format_validation_error(e)}", source) from e

        seen: set[str] = set()
        for spec in catalogue.rules:
            if spec.id in seen:
                raise RuleLoadError(f"Duplicate rule id: {spec.id}", source)
            seen.add(spec.id)

        rules = RuleSet(spec.to_rule() for spec in catalogue.rules if spec.enabled)
        logger.debug(f"Loaded {len(rules)} rules from {source}")
        return rules

    def load_file(self, path: Path) -> RuleSet:
        """Load one catalogue file (cached by resolved path)."""
        path = Path(path)
        key = path.resolve()
        if key in self._cache:
            return self._cache[key]
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise RuleLoadError(f"Cannot read catalogue: {e.strerror or e}", path) from e
        except UnicodeDecodeError as e:
            raise RuleLoadError("Catalogue is not valid UTF-8", path) from e
        rules = self.parse(text, path)
        self._cache[key] = rules
        return rules

    def load(self, *paths: Path, include_defaults: bool = True) -> RuleSet:
        """
        Load and overlay catalogues, built-in defaults first.

        Raises:
            RuleLoadError: any catalogue is invalid, or the result is empty
        """
        rules = RuleSet()
        sources = ([DEFAULT_CATALOGUE] if include_defaults else []) + [Path(p) for p in paths]
        for path in sources:
            rules = rules.merge(self.load_file(path))
        if not len(rules):
            raise RuleLoadError("No rules loaded", ", ".join(str(p) for p in sources) or None)
        logger.info(f"Rule set ready: {len(rules)} rules ({', '.join(rules.ids)})")
        return rules

    def clear_cache(self) -> None:
        self._cache.clear()

    def validate_file(self, path: Path) -> list[str]:
        """
        Validate a catalogue without raising.

        Returns:
            Error messages (empty if valid)
        """
        try:
            rules = self.load_file(path)
        except RuleLoadError as e:
            return [e.message]
        errors = []
        for rule in rules:
            if not rule.remediation:
                errors.append(f"Rule '{rule.id}' has no remediation text")
        return errors


def load_rules(*paths: Union[str, Path], include_defaults: bool = True) -> RuleSet:
    """
    Load the rule set a scan runs with.

    Args:
        paths: Extra catalogues, applied in order over the defaults
        include_defaults: Start from the built-in catalogue

    Raises:
        RuleLoadError: a catalogue is malformed or no rules remain
    """
    return RuleLoader().load(*(Path(p) for p in paths), include_defaults=include_defaults)
