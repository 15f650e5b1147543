"""Rule catalogues and syntactic node classification."""

from orthrus.rules.loader import DEFAULT_CATALOGUE, RuleLoader, load_rules
from orthrus.rules.ruleset import (
    NodePattern,
    PatternTarget,
    Rule,
    RuleSet,
    RuleTag,
    TagIndex,
    tag_graph,
)

__all__ = [
    "DEFAULT_CATALOGUE",
    "NodePattern",
    "PatternTarget",
    "Rule",
    "RuleLoader",
    "RuleSet",
    "RuleTag",
    "TagIndex",
    "load_rules",
    "tag_graph",
]
