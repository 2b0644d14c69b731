"""Format classifier.

Guesses a source's module shape and dialect. Never fails: unparseable input
still gets a best-effort answer from the line-anchored regexes.
"""

import re
from typing import Optional

from ..ast_parser import SourceTree, parse_source
from ..models import Dialect, FormatInfo, ModuleFormat

# Top-level module syntax, anchored at the start of a line
_MODULE_PATTERNS = (
    re.compile(r"^import\s+", re.MULTILINE),
    re.compile(r"^export\s+default", re.MULTILINE),
    re.compile(r"^export\s+\{", re.MULTILINE),
    re.compile(r"^export\s+(const|let|var|function|class)", re.MULTILINE),
)

_TYPED_PATTERNS = (
    re.compile(r"^\s*(?:export\s+)?interface\s+[A-Za-z_$][\w$]*", re.MULTILINE),
    re.compile(r"^\s*(?:export\s+)?type\s+[A-Za-z_$][\w$]*\s*(?:<[^>]*>)?\s*=", re.MULTILINE),
    re.compile(r":\s*React\.FC\b"),
)

MODULE_NODE_TYPES = ("import_statement", "export_statement")

JSX_NODE_TYPES = (
    "jsx_element",
    "jsx_self_closing_element",
    "jsx_fragment",
)

TYPE_NODE_TYPES = (
    "interface_declaration",
    "type_alias_declaration",
    "type_annotation",
    "enum_declaration",
    "as_expression",
    "satisfies_expression",
)


def _has_module_syntax(tree: SourceTree, code: str) -> bool:
    if any(child.type in MODULE_NODE_TYPES for child in tree.root.children):
        return True
    if tree.has_error:
        return any(p.search(code) for p in _MODULE_PATTERNS)
    return False


def is_module(code: str) -> bool:
    """True if the source has top-level import/export syntax."""
    if not code or not code.strip():
        return False
    return _has_module_syntax(parse_source(code, "javascript"), code)


def contains_typed_syntax(code: str, js_tree: Optional[SourceTree] = None) -> bool:
    """True if the source uses TypeScript-only syntax."""
    if any(p.search(code) for p in _TYPED_PATTERNS):
        return True
    js_tree = js_tree or parse_source(code, "javascript")
    if not js_tree.has_error:
        return False
    return parse_source(code, "tsx").contains(*TYPE_NODE_TYPES)


def classify(code: str) -> FormatInfo:
    """Classify module shape and dialect.

    Order of checks:
    1. top-level import/export → ``module`` (else ``legacy-script``)
    2. TypeScript markers → ``typed``
    3. JSX nodes → ``markup``; a clean parse without JSX → ``plain``;
       anything else falls back to ``markup``

    Args:
        code: Raw source text

    Returns:
        FormatInfo
    """
    if not code or not code.strip():
        return FormatInfo(ModuleFormat.LEGACY_SCRIPT, Dialect.PLAIN)

    js_tree = parse_source(code, "javascript")
    module_format = ModuleFormat.MODULE if _has_module_syntax(js_tree, code) else ModuleFormat.LEGACY_SCRIPT

    if contains_typed_syntax(code, js_tree):
        dialect = Dialect.TYPED
    elif js_tree.contains(*JSX_NODE_TYPES):
        dialect = Dialect.MARKUP
    elif not js_tree.has_error:
        dialect = Dialect.PLAIN
    else:
        dialect = Dialect.MARKUP

    return FormatInfo(module_format, dialect)
