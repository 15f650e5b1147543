"""Source model adapter: parsing, discovery and lowering to the uniform node model."""

from orthrus.context.adapter import SourceModelAdapter
from orthrus.context.grammars import PROFILES, GrammarProfile, get_profile
from orthrus.context.tree_sitter_parser import LANGUAGE_EXTENSIONS, TreeSitterParser

__all__ = [
    "GrammarProfile",
    "LANGUAGE_EXTENSIONS",
    "PROFILES",
    "SourceModelAdapter",
    "TreeSitterParser",
    "get_profile",
]
