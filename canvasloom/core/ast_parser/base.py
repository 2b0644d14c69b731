"""Parsed source wrapper shared by all compiler stages.

Holds the source bytes next to the tree-sitter tree so stages can read node
text and splice edits by byte offset without re-encoding.
"""

import logging
from typing import Iterable, Iterator, List, Optional

import tree_sitter

from .utils import Edit, apply_edits, get_language

logger = logging.getLogger(__name__)


class SourceTree:
    """A tree-sitter parse of one module's source text.

    Attributes:
        source_text: Original source as str
        source: UTF-8 bytes that node offsets refer to
        grammar: Grammar the tree was parsed with
        tree: tree-sitter Tree
    """

    def __init__(self, source_text: str, grammar: str = "javascript"):
        self.source_text = source_text
        self.source = source_text.encode("utf-8")
        self.grammar = grammar

        parser = tree_sitter.Parser(get_language(grammar))
        self.tree = parser.parse(self.source)

    @property
    def root(self) -> tree_sitter.Node:
        return self.tree.root_node

    @property
    def has_error(self) -> bool:
        return self.tree.root_node.has_error

    def text(self, node: tree_sitter.Node) -> str:
        return self.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def walk(self, node: Optional[tree_sitter.Node] = None) -> Iterator[tree_sitter.Node]:
        """Pre-order traversal of ``node`` (default: root)."""
        stack = [node or self.root]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    def find(self, *types: str, node: Optional[tree_sitter.Node] = None) -> List[tree_sitter.Node]:
        """All descendants of ``node`` whose type is in ``types``."""
        wanted = set(types)
        return [n for n in self.walk(node) if n.type in wanted]

    def contains(self, *types: str) -> bool:
        wanted = set(types)
        return any(n.type in wanted for n in self.walk())

    def first_error_line(self) -> Optional[int]:
        """1-based line of the first ERROR or MISSING node, if any."""
        for node in self.walk():
            if node.type == "ERROR" or node.is_missing:
                return node.start_point.row + 1
        return None

    def apply(self, edits: Iterable[Edit]) -> str:
        """Return the source with ``edits`` spliced in."""
        return apply_edits(self.source, edits)

    @staticmethod
    def string_value(node: tree_sitter.Node, source: bytes) -> str:
        """Contents of a string literal node without its quotes."""
        raw = source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")
        if len(raw) >= 2 and raw[0] in "'\"`" and raw[-1] == raw[0]:
            return raw[1:-1]
        return raw
