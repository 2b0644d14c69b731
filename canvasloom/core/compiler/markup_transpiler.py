"""ESM-aware markup transpiler.

Lowers embedded JSX into ``React.createElement`` calls while leaving every
byte outside the markup untouched, so the module's import/export envelope
survives exactly. Typed sources are parsed with the TSX grammar and their
type-only syntax is dropped on the way through.

Lowering rules (classic runtime):
- ``<div a="x" b={y} c {...rest}>`` → ``React.createElement("div", {a: "x", b: y, c: true, ...rest}, ...)``
- ``<Card />`` / ``<ui.Card />`` → identifier / member expression as the type
- ``<>...</>`` → ``React.Fragment``
- JSX text is whitespace-collapsed the way Babel does it; entities are decoded
"""

import bisect
import html
import json
import logging
import re
from typing import List, Optional, Tuple

import tree_sitter

from ..ast_parser import SourceTree, parse_source
from ..constants import FRAMEWORK_BINDING, KNOWN_HOST_TAGS
from ..models import TranspileResult
from .format_classifier import JSX_NODE_TYPES, contains_typed_syntax, is_module

logger = logging.getLogger(__name__)

CREATE_ELEMENT = f"{FRAMEWORK_BINDING}.createElement"
FRAGMENT = f"{FRAMEWORK_BINDING}.Fragment"

ENVELOPE_ERROR = "ESM transpilation unexpectedly removed module structure"

_HOST_TAGS = "|".join(KNOWN_HOST_TAGS)

# Heuristics kept from the regex detector; the AST check below backs them up
_MARKUP_PATTERNS = (
    re.compile(r"<[A-Z]\w*[^>]*>"),
    re.compile(r"<(?:" + _HOST_TAGS + r")\b[^>]*>"),
    re.compile(r"</[A-Za-z]+>"),
    re.compile(r"\w+\s*=\s*\{[^}]*\}"),
)
_MARKUP_RETURN = re.compile(r"return\s*\(\s*<")
_MARKUP_SUBSTRINGS = ("<div", "<span", "<button", "<input", "<form", "<select", "<textarea")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][\w$]*$")
_NEWLINE_RE = re.compile(r"\r\n|\n|\r")

# Nodes removed outright in the typed dialect
_TYPE_ONLY_NODES = frozenset({
    "type_annotation",
    "type_arguments",
    "type_parameters",
    "interface_declaration",
    "type_alias_declaration",
    "accessibility_modifier",
    "override_modifier",
    "type_predicate_annotation",
    "asserts_annotation",
    "implements_clause",
    "ambient_declaration",
})

# Expressions that keep only their first named child
_TYPE_WRAPPER_NODES = frozenset({"as_expression", "satisfies_expression", "non_null_expression"})


def contains_markup(code: str) -> bool:
    """Check if code contains JSX that needs transpilation."""
    if not isinstance(code, str) or not code:
        return False
    if any(p.search(code) for p in _MARKUP_PATTERNS) or _MARKUP_RETURN.search(code):
        return True
    if any(s in code for s in _MARKUP_SUBSTRINGS):
        return True
    tree = parse_source(code, "javascript")
    return tree.contains(*JSX_NODE_TYPES)


def _clean_jsx_text(value: str) -> str:
    """Collapse JSX text the way the classic JSX transform does.

    Lines are trimmed (leading whitespace except on the first line,
    trailing except on the last), blank lines dropped, and the remaining
    lines joined with single spaces.
    """
    lines = _NEWLINE_RE.split(value)
    last_non_empty = 0
    for i, line in enumerate(lines):
        if line.strip(" \t"):
            last_non_empty = i

    out = ""
    for i, line in enumerate(lines):
        trimmed = line.replace("\t", " ")
        if i != 0:
            trimmed = trimmed.lstrip(" ")
        if i != len(lines) - 1:
            trimmed = trimmed.rstrip(" ")
        if trimmed:
            if i != last_non_empty:
                trimmed += " "
            out += trimmed
    return out


class _Lowering:
    """One transpile pass over a parsed module."""

    def __init__(self, tree: SourceTree, typed: bool):
        self.tree = tree
        self.source = tree.source
        self.typed = typed
        self.element_count = 0

        # Start offsets of every node this pass rewrites, for subtree checks
        starts = []
        for node in tree.walk():
            if self._rewrites(node):
                starts.append(node.start_byte)
        self._starts = sorted(starts)

    def _rewrites(self, node: tree_sitter.Node) -> bool:
        if node.type in JSX_NODE_TYPES:
            return True
        if not self.typed:
            return False
        if node.type in _TYPE_ONLY_NODES or node.type in _TYPE_WRAPPER_NODES:
            return True
        if node.type == "enum_declaration":
            return True
        if node.type == "optional_parameter":
            return True
        return self._is_type_only_statement(node)

    def _is_type_only_statement(self, node: tree_sitter.Node) -> bool:
        if node.type == "export_statement":
            decl = node.child_by_field_name("declaration")
            return decl is not None and decl.type in ("interface_declaration", "type_alias_declaration")
        if node.type == "import_statement":
            return any(child.type == "type" for child in node.children)
        return False

    def _needs_rewrite(self, node: tree_sitter.Node) -> bool:
        i = bisect.bisect_left(self._starts, node.start_byte)
        return i < len(self._starts) and self._starts[i] < node.end_byte

    def text(self, node: tree_sitter.Node) -> str:
        return self.tree.text(node)

    # -------------------------------------------------------------------------
    # Generic splice
    # -------------------------------------------------------------------------

    def splice(self, node: tree_sitter.Node) -> str:
        """Source of ``node`` with every JSX/type node beneath it rewritten."""
        if node.type in JSX_NODE_TYPES:
            return self.lower_element(node)
        if not self._needs_rewrite(node):
            return self.text(node)
        if self.typed:
            if node.type in _TYPE_ONLY_NODES or self._is_type_only_statement(node):
                return ""
            if node.type in _TYPE_WRAPPER_NODES:
                return self.splice(node.named_children[0])
            if node.type == "enum_declaration":
                return self.lower_enum(node)

        parts: List[str] = []
        cursor = node.start_byte
        for child in node.children:
            if self.typed and node.type == "optional_parameter" and child.type == "?":
                parts.append(self.source[cursor:child.start_byte].decode("utf-8", errors="replace"))
                cursor = child.end_byte
                continue
            parts.append(self.source[cursor:child.start_byte].decode("utf-8", errors="replace"))
            parts.append(self.splice(child))
            cursor = child.end_byte
        parts.append(self.source[cursor:node.end_byte].decode("utf-8", errors="replace"))
        return "".join(parts)

    # -------------------------------------------------------------------------
    # Enum lowering
    # -------------------------------------------------------------------------

    def lower_enum(self, node: tree_sitter.Node) -> str:
        """Lower ``enum E { A, B = 5, C = "c" }`` to the IIFE form tsc emits.

        Numeric members get a reverse mapping; string members do not.
        A member without an initializer after a non-numeric one is an error.
        """
        name = self.text(node.child_by_field_name("name"))
        body = node.child_by_field_name("body")
        statements: List[str] = []
        next_value: Optional[int] = 0

        for member in body.named_children:
            if member.type == "comment":
                continue
            if member.type == "enum_assignment":
                key_node = member.child_by_field_name("name")
                value_node = member.child_by_field_name("value")
            else:
                key_node, value_node = member, None
            key = json.dumps(SourceTree.string_value(key_node, self.source))

            if value_node is None:
                if next_value is None:
                    raise ValueError(f"Enum member {key} of {name} needs an initializer")
                value = str(next_value)
                next_value += 1
            elif value_node.type == "string":
                statements.append(f"{name}[{key}] = {self.text(value_node)};")
                next_value = None
                continue
            else:
                value = self.splice(value_node)
                try:
                    next_value = int(value, 0) + 1
                except ValueError:
                    next_value = None
            statements.append(f"{name}[{name}[{key}] = {value}] = {key};")

        inner = " ".join(statements)
        return f"var {name}; (function ({name}) {{ {inner} }})({name} || ({name} = {{}}));"

    # -------------------------------------------------------------------------
    # JSX lowering
    # -------------------------------------------------------------------------

    def lower_element(self, node: tree_sitter.Node) -> str:
        self.element_count += 1
        if node.type == "jsx_self_closing_element":
            name_node = node.child_by_field_name("name")
            attributes = [c for c in node.named_children if c.type in ("jsx_attribute", "jsx_expression")]
            children: List[tree_sitter.Node] = []
        elif node.type == "jsx_fragment":
            name_node = None
            attributes = []
            children = [c for c in node.children if c.is_named]
        else:
            opening = next(c for c in node.children if c.type == "jsx_opening_element")
            name_node = opening.child_by_field_name("name")
            attributes = [c for c in opening.named_children if c.type in ("jsx_attribute", "jsx_expression")]
            children = [
                c for c in node.children
                if c.is_named and c.type not in ("jsx_opening_element", "jsx_closing_element")
            ]

        args = [self._element_type(name_node), self._props(attributes)]
        args.extend(self._children(children))
        return f"{CREATE_ELEMENT}({', '.join(args)})"

    def _element_type(self, name_node: Optional[tree_sitter.Node]) -> str:
        if name_node is None:
            return FRAGMENT
        name = self.text(name_node)
        if name_node.type == "identifier" and (name[:1].islower() or "-" in name):
            return json.dumps(name)
        if name_node.type == "jsx_namespace_name":
            return json.dumps(name)
        return name

    def _props(self, attributes: List[tree_sitter.Node]) -> str:
        if not attributes:
            return "null"
        props: List[str] = []
        for attr in attributes:
            if attr.type == "jsx_expression":
                inner = self._expression_child(attr)
                if inner is not None:
                    props.append(self.splice(inner))
                continue
            key_node = attr.named_children[0]
            key = self.text(key_node)
            if not _IDENTIFIER_RE.match(key):
                key = json.dumps(key)
            value_node = attr.named_children[1] if len(attr.named_children) > 1 else None
            props.append(f"{key}: {self._attribute_value(value_node)}")
        return "{" + ", ".join(props) + "}"

    def _attribute_value(self, value_node: Optional[tree_sitter.Node]) -> str:
        if value_node is None:
            return "true"
        if value_node.type == "string" or self.text(value_node)[:1] in ("'", "\""):
            raw = SourceTree.string_value(value_node, self.source)
            return json.dumps(html.unescape(raw))
        if value_node.type == "jsx_expression":
            inner = self._expression_child(value_node)
            return self.splice(inner) if inner is not None else "true"
        return self.splice(value_node)

    def _children(self, children: List[tree_sitter.Node]) -> List[str]:
        out: List[str] = []
        for child in children:
            if child.type == "jsx_text":
                cleaned = _clean_jsx_text(self.text(child))
                if cleaned:
                    out.append(json.dumps(html.unescape(cleaned)))
            elif child.type == "html_character_reference":
                out.append(json.dumps(html.unescape(self.text(child))))
            elif child.type == "jsx_expression":
                inner = self._expression_child(child)
                if inner is not None:
                    out.append(self.splice(inner))
            elif child.type in JSX_NODE_TYPES:
                out.append(self.lower_element(child))
            elif child.type != "comment":
                out.append(self.splice(child))
        return out

    @staticmethod
    def _expression_child(container: tree_sitter.Node) -> Optional[tree_sitter.Node]:
        """The expression inside ``{...}``, ignoring comments."""
        for child in container.named_children:
            if child.type != "comment":
                return child
        return None


def _has_framework_binding(code: str) -> bool:
    return bool(re.search(
        r"^import\s+(?:\*\s+as\s+)?" + FRAMEWORK_BINDING + r"\b", code, re.MULTILINE,
    ) or re.search(r"\b(?:const|let|var)\s+" + FRAMEWORK_BINDING + r"\s*=", code))


def _parse_for_transpile(code: str) -> Tuple[SourceTree, bool]:
    """Pick the grammar: TSX for typed sources, else JS with a TSX retry."""
    if contains_typed_syntax(code):
        return parse_source(code, "tsx"), True
    tree = parse_source(code, "javascript")
    if tree.has_error:
        typed_tree = parse_source(code, "tsx")
        if not typed_tree.has_error:
            return typed_tree, True
    return tree, False


def transpile(code: str, debug: bool = False) -> TranspileResult:
    """Lower JSX (and strip types) while preserving the module envelope.

    Args:
        code: Modular source containing markup
        debug: Log lowering statistics

    Returns:
        TranspileResult; on failure ``code`` is None
    """
    warnings: List[str] = []
    try:
        tree, typed = _parse_for_transpile(code)
        if tree.has_error:
            line = tree.first_error_line()
            return TranspileResult(
                success=False,
                error=f"Markup parse error near line {line}" if line else "Markup parse error",
                warnings=warnings,
            )

        lowering = _Lowering(tree, typed)
        output = lowering.splice(tree.root)

        if typed:
            warnings.append("Removed TypeScript-only syntax")
        if lowering.element_count and not _has_framework_binding(output):
            warnings.append(f"Transpiled markup references {FRAMEWORK_BINDING} but the module does not import it")

        if debug:
            logger.debug(f"Lowered {lowering.element_count} markup elements (typed={typed})")

    except Exception as e:
        logger.error(f"Markup transpilation failed: {e}")
        return TranspileResult(success=False, error=str(e), warnings=warnings)

    if is_module(code) and not is_module(output):
        return TranspileResult(success=False, error=ENVELOPE_ERROR, warnings=warnings)

    return TranspileResult(success=True, code=output, warnings=warnings)
