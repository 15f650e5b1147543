"""
Per-unit scan pipeline.

adapter -> graph builder -> tagging -> path evaluator. Runs inside worker
processes, so everything it takes and returns is picklable. Failures of a
unit are returned in the UnitResult, never raised, except graph defects in
strict mode.
"""

from __future__ import annotations

import time
from typing import Optional

from orthrus.analysis.graph_builder import TaintGraphBuilder
from orthrus.analysis.path_evaluator import PathEvaluator
from orthrus.context.adapter import SourceModelAdapter
from orthrus.core.errors import InternalGraphError, ParseError
from orthrus.models.base import Tag
from orthrus.models.finding import UnitError, UnitResult
from orthrus.models.program import SourceUnit
from orthrus.rules.ruleset import RuleSet, tag_graph
from orthrus.utils.logging import get_logger

logger = get_logger("pipeline", parent="core")

# One adapter per process; it caches the loaded grammars.
_adapter: Optional[SourceModelAdapter] = None


def _default_adapter() -> SourceModelAdapter:
    global _adapter
    if _adapter is None:
        _adapter = SourceModelAdapter()
    return _adapter


def scan_unit(
    unit: SourceUnit,
    rules: RuleSet,
    strict: bool = False,
    adapter: Optional[SourceModelAdapter] = None,
) -> UnitResult:
    """
    Scan one unit.

    Args:
        unit: File or in-memory buffer
        rules: Rule set to apply
        strict: Raise InternalGraphError instead of recording it
        adapter: Adapter to use (default: a per-process shared one)

    Returns:
        Findings of the unit, or the error that stopped it

    Raises:
        InternalGraphError: strict mode only
    """
    started = time.perf_counter()
    result = UnitResult(file_path=unit.path, language=unit.language)
    adapter = adapter or _default_adapter()

    try:
        model = adapter.adapt(unit)
        result.language = model.language
        result.lines = model.line_count

        graph = TaintGraphBuilder().build(model)
        tags = tag_graph(graph, rules)
        result.sources_found = tags.count(Tag.SOURCE)
        result.sinks_found = tags.count(Tag.SINK)
        result.sanitizers_found = tags.count(Tag.SANITIZER)

        result.findings = PathEvaluator(rules, strict=strict).evaluate(graph, tags)

    except ParseError as e:
        logger.warning("Skipping unparsable unit", file=e.file, line=e.line, error=e.message)
        result.error = UnitError(e.file, "ParseError", e.message, line=e.line, phase="parse")

    except InternalGraphError as e:
        if strict:
            raise
        logger.error("Taint graph defect", file=unit.path, error=str(e))
        result.error = UnitError(str(unit.path), "InternalGraphError", str(e), phase="graph")

    except Exception as e:
        logger.error("Unexpected failure scanning unit", exc=e, file=unit.path)
        result.error = UnitError(str(unit.path), type(e).__name__, str(e))

    result.duration_ms = (time.perf_counter() - started) * 1000
    return result
