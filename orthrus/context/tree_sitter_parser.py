"""
Parsing and unit discovery using Tree-sitter.

Grammars come from the per-language `tree-sitter-<language>` packages.
"""

from __future__ import annotations

import fnmatch
import importlib
from pathlib import Path
from typing import Any, Iterable, Optional

from tree_sitter import Language, Parser

from orthrus.context.grammars import PROFILES
from orthrus.core.errors import ParseError
from orthrus.models.program import SourceUnit
from orthrus.utils.logging import ComponentLogger

LANGUAGE_EXTENSIONS: dict[str, str] = {
    ext: language for language, profile in PROFILES.items() for ext in profile.extensions
}


class TreeSitterParser:
    """Parse source units into tree-sitter trees."""

    def __init__(self) -> None:
        self.logger = ComponentLogger("tree_sitter", parent="context")
        self._parsers: dict[str, Parser] = {}

    def _get_parser(self, language: str) -> Parser:
        """
        Get or create the parser for a language.

        Raises:
            ParseError: language has no grammar profile
        """
        if language not in self._parsers:
            profile = PROFILES.get(language)
            if profile is None:
                raise ParseError("<unknown>", None, f"Unsupported language: {language}")
            grammar = importlib.import_module(profile.module)
            self._parsers[language] = Parser(Language(grammar.language()))
            self.logger.debug("Loaded grammar", language=language)
        return self._parsers[language]

    def detect_language(self, file_path: Path) -> Optional[str]:
        """Detect language from file extension."""
        return LANGUAGE_EXTENSIONS.get(file_path.suffix.lower())

    def read_unit(self, unit: SourceUnit) -> tuple[str, bytes]:
        """
        Resolve a unit's language and source bytes.

        Raises:
            ParseError: unknown language, unreadable file or invalid UTF-8
        """
        language = (unit.language or self.detect_language(unit.path) or "").lower()
        if language not in PROFILES:
            raise ParseError(unit.path, None, f"Unsupported language: {language or unit.path.suffix or '?'}")

        if unit.content is not None:
            return language, unit.content.encode("utf-8")

        try:
            content = unit.path.read_bytes()
        except OSError as e:
            raise ParseError(unit.path, None, f"Cannot read file: {e.strerror or e}") from e
        try:
            content.decode("utf-8")
        except UnicodeDecodeError as e:
            line = content[: e.start].count(b"\n") + 1
            raise ParseError(unit.path, line, "File is not valid UTF-8") from e
        return language, content

    def parse_bytes(self, content: bytes, language: str, file_path: Path = Path("<memory>")) -> Any:
        """
        Parse source bytes, rejecting trees with syntax errors.

        Raises:
            ParseError: the grammar reported an ERROR or missing node
        """
        tree = self._get_parser(language).parse(content)
        if tree.root_node.has_error:
            error = first_error(tree.root_node)
            line = error.start_point[0] + 1 if error is not None else None
            what = f"missing {error.type}" if error is not None and error.is_missing else "syntax error"
            raise ParseError(file_path, line, what)
        return tree

    def parse_string(self, content: str, language: str) -> Any:
        return self.parse_bytes(content.encode("utf-8"), language)

    def parse_unit(self, unit: SourceUnit) -> tuple[str, bytes, Any]:
        """Read and parse one unit; returns (language, source, tree)."""
        language, content = self.read_unit(unit)
        tree = self.parse_bytes(content, language, unit.path)
        self.logger.debug("Parsed unit", file=unit.path, language=language)
        return language, content, tree

    def discover_units(
        self,
        paths: Iterable[Path],
        exclude_patterns: Optional[list[str]] = None,
        max_file_size_mb: float = 5,
        languages: Optional[list[str]] = None,
        max_files: Optional[int] = None,
        follow_symlinks: bool = False,
    ) -> list[SourceUnit]:
        """
        Expand files and directories into scannable units.

        Explicit file arguments are always kept (their language may still be
        unsupported, which surfaces later as a per-unit ParseError).
        Directory contents are filtered by extension, exclude globs and size.
        """
        exclude_patterns = exclude_patterns or []
        max_size = int(max_file_size_mb * 1024 * 1024)
        units: list[SourceUnit] = []
        seen: set[Path] = set()

        for root in paths:
            root = Path(root)
            if root.is_file():
                candidates = [root]
            elif root.is_dir():
                candidates = self._discover_files(root, languages, follow_symlinks)
            else:
                self.logger.warning("Path does not exist", path=root)
                continue

            for file_path in candidates:
                if file_path in seen:
                    continue
                if root.is_dir():
                    rel_path = file_path.relative_to(root).as_posix()
                    if _excluded(rel_path, file_path.name, exclude_patterns):
                        continue
                    try:
                        if file_path.stat().st_size > max_size:
                            self.logger.debug("Skipping large file", file=file_path)
                            continue
                    except OSError:
                        continue
                seen.add(file_path)
                units.append(SourceUnit(file_path))
                if max_files is not None and len(units) >= max_files:
                    self.logger.warning("File limit reached", max_files=max_files)
                    return units

        return units

    def _discover_files(
        self,
        repo_path: Path,
        languages: Optional[list[str]] = None,
        follow_symlinks: bool = False,
    ) -> list[Path]:
        if languages and "auto" not in languages:
            extensions = {ext for ext, lang in LANGUAGE_EXTENSIONS.items() if lang in languages}
        else:
            extensions = set(LANGUAGE_EXTENSIONS)

        files: list[Path] = []
        for ext in extensions:
            for file_path in repo_path.rglob(f"*{ext}"):
                if file_path.is_symlink() and not follow_symlinks:
                    continue
                if file_path.is_file():
                    files.append(file_path)
        return sorted(files)

    def get_supported_languages(self) -> set[str]:
        return set(LANGUAGE_EXTENSIONS.values())

    def get_extensions_for_language(self, language: str) -> list[str]:
        return sorted(ext for ext, lang in LANGUAGE_EXTENSIONS.items() if lang == language)


def first_error(node: Any) -> Optional[Any]:
    """Depth-first search for the first ERROR or missing node."""
    if node.type == "ERROR" or node.is_missing:
        return node
    for c in node.children:
        if c.has_error or c.type == "ERROR" or c.is_missing:
            found = first_error(c)
            if found is not None:
                return found
    return None


def _excluded(rel_path: str, name: str, patterns: list[str]) -> bool:
    for pattern in patterns:
        if fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern):
            return True
        # "**/x/**" should also match "x/..." at the root
        if pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:]):
            return True
    return False
