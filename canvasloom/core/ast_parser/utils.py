"""Syntax layer utilities.

Grammar registry and byte-range edit splicing.
"""

from dataclasses import dataclass
from typing import Dict, Iterable

import tree_sitter

# Grammar name → tree-sitter Language, built on first use
SUPPORTED_GRAMMARS = ("javascript", "tsx")

_language_registry: Dict[str, tree_sitter.Language] = {}


def get_language(grammar: str) -> tree_sitter.Language:
    """Get the tree-sitter Language for a grammar name.

    Uses a lazy-initialized registry so the TSX grammar is only loaded
    when typed sources show up.

    Args:
        grammar: "javascript" (JS + JSX) or "tsx" (TypeScript + JSX)

    Returns:
        tree-sitter Language

    Raises:
        ValueError: If the grammar is not supported
    """
    if grammar not in _language_registry:
        if grammar == "javascript":
            import tree_sitter_javascript
            _language_registry["javascript"] = tree_sitter.Language(tree_sitter_javascript.language())
        elif grammar == "tsx":
            import tree_sitter_typescript
            _language_registry["tsx"] = tree_sitter.Language(tree_sitter_typescript.language_tsx())
        else:
            raise ValueError(
                f"Unsupported grammar: {grammar}. Supported: {list(SUPPORTED_GRAMMARS)}"
            )

    return _language_registry[grammar]


@dataclass(frozen=True)
class Edit:
    """Replace source bytes ``[start, end)`` with ``replacement``."""
    start: int
    end: int
    replacement: str


def apply_edits(source: bytes, edits: Iterable[Edit]) -> str:
    """Splice edits into source bytes.

    When two edits overlap the one that starts first (and, on ties, spans
    further) wins; edits nested inside it are dropped.

    Returns:
        The edited source decoded as UTF-8
    """
    ordered = sorted(edits, key=lambda e: (e.start, -e.end))
    kept = []
    for edit in ordered:
        if kept and edit.start < kept[-1].end:
            continue
        kept.append(edit)

    out = bytearray()
    cursor = 0
    for edit in kept:
        out += source[cursor:edit.start]
        out += edit.replacement.encode("utf-8")
        cursor = edit.end
    out += source[cursor:]
    return out.decode("utf-8", errors="replace")
