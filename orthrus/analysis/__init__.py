"""Taint graph construction, path evaluation and finding aggregation."""

from orthrus.analysis.aggregator import FindingAggregator
from orthrus.analysis.graph_builder import TaintGraphBuilder
from orthrus.analysis.path_evaluator import PathEvaluator
from orthrus.analysis.taint_graph import Edge, FlowReason, TaintGraph

__all__ = [
    "Edge",
    "FindingAggregator",
    "FlowReason",
    "PathEvaluator",
    "TaintGraph",
    "TaintGraphBuilder",
]
