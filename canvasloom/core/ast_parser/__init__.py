"""CanvasLoom syntax layer: tree-sitter based JS/JSX/TSX parsing.

Public API:
    parse_source(source, grammar) → SourceTree
    parse_best_effort(source) → SourceTree
    get_language(grammar) → tree_sitter.Language
    apply_edits(source_bytes, edits) → str
"""

from .base import SourceTree
from .utils import SUPPORTED_GRAMMARS, Edit, apply_edits, get_language

__all__ = [
    "parse_source",
    "parse_best_effort",
    "get_language",
    "apply_edits",
    "Edit",
    "SourceTree",
    "SUPPORTED_GRAMMARS",
]


def parse_source(source_text: str, grammar: str = "javascript") -> SourceTree:
    """Parse source text with one grammar.

    Args:
        source_text: Module source
        grammar: "javascript" or "tsx"

    Returns:
        SourceTree (check ``has_error`` before trusting structure)
    """
    return SourceTree(source_text, grammar)


def parse_best_effort(source_text: str) -> SourceTree:
    """Parse as JavaScript, falling back to TSX when JS reports errors.

    Returns whichever tree parsed cleanly, or the JavaScript tree when both
    report errors.
    """
    tree = SourceTree(source_text, "javascript")
    if not tree.has_error:
        return tree
    typed_tree = SourceTree(source_text, "tsx")
    if not typed_tree.has_error:
        return typed_tree
    return tree
