"""Import normalizer.

Generated components routinely call hooks they never import
(``useState(0)`` with only ``import React from 'react'``). This stage
completes the framework import from a fixed whitelist and rewrites a few
DOM/resource teardown calls that throw when the target is already gone.

Usage detection and the teardown rewrites walk the tree-sitter AST; when the
source does not parse, the line-anchored regexes are used instead.
"""

import logging
import re
from typing import List, Optional, Set, Tuple

import tree_sitter

from ..ast_parser import Edit, SourceTree, parse_best_effort
from ..constants import FRAMEWORK_BINDING, FRAMEWORK_NAME, FRAMEWORK_PRIMITIVES
from ..models import NormalizeResult

logger = logging.getLogger(__name__)

# The module's framework import, anchored at the start of a line:
#   import React, { a, b } from 'react';
#   import React from 'react';
#   import { a, b } from 'react';
_FRAMEWORK_IMPORT_RE = re.compile(
    r"^import\s+"
    r"(?:(?P<default>" + FRAMEWORK_BINDING + r")\b\s*,?\s*)?"
    r"(?:\{(?P<named>[^}]*)\}\s*)?"
    r"from\s+(?P<quote>['\"])" + re.escape(FRAMEWORK_NAME) + r"(?P=quote);?",
    re.MULTILINE,
)

# Regex fallbacks for sources tree-sitter cannot parse
_FALLBACK_REMOVE_CHILD_RE = re.compile(r"(\w+)\.current\.removeChild\(([^)]+)\)")
_FALLBACK_DOM_LISTENER_RE = re.compile(r"(\w+)\.domElement\.removeEventListener")

# Parents whose statements can be replaced without adding a block
_STATEMENT_LIST_NODES = frozenset({"program", "statement_block", "switch_case", "switch_default"})

NO_IMPORT_WARNING = "No React import found, skipping import fixing"
ALL_IMPORTED_WARNING = "All React hooks are properly imported"
CLEANUP_WARNING = "Applied safer cleanup patterns for DOM operations"

# Rewrites are idempotent, so a few passes reach a fixed point even when
# one rewrite sits inside another.
_MAX_CLEANUP_PASSES = 3


def _find_framework_import(code: str) -> Optional[re.Match]:
    for match in _FRAMEWORK_IMPORT_RE.finditer(code):
        if match.group("default") or match.group("named") is not None:
            return match
    return None


def _split_specifiers(named: Optional[str]) -> List[str]:
    if not named:
        return []
    return [part.strip() for part in named.split(",") if part.strip()]


def _imported_name(specifier: str) -> str:
    """``useState as useLocalState`` → ``useState``."""
    return specifier.split(" as ")[0].strip()


# =============================================================================
# Usage detection
# =============================================================================

def _declared_names(tree: SourceTree) -> Set[str]:
    """Names bound locally by declarations or destructuring."""
    names: Set[str] = set()
    for node in tree.walk():
        if node.type == "variable_declarator":
            target = node.child_by_field_name("name")
            if target is None:
                continue
            if target.type == "identifier":
                names.add(tree.text(target))
            else:
                for sub in tree.walk(target):
                    if sub.type == "shorthand_property_identifier_pattern":
                        names.add(tree.text(sub))
                    elif sub.type == "pair_pattern":
                        value = sub.child_by_field_name("value")
                        if value is not None and value.type == "identifier":
                            names.add(tree.text(value))
        elif node.type == "function_declaration":
            name = node.child_by_field_name("name")
            if name is not None:
                names.add(tree.text(name))
    return names


def find_used_primitives(code: str, tree: Optional[SourceTree] = None) -> List[str]:
    """Whitelisted primitives called as bare identifiers, in whitelist order."""
    tree = tree or parse_best_effort(code)
    if tree.has_error:
        return [
            name for name in FRAMEWORK_PRIMITIVES
            if re.search(r"\b" + name + r"\s*\(", code)
        ]

    called: Set[str] = set()
    for node in tree.find("call_expression"):
        fn = node.child_by_field_name("function")
        if fn is not None and fn.type == "identifier":
            called.add(tree.text(fn))

    local = _declared_names(tree)
    return [name for name in FRAMEWORK_PRIMITIVES if name in called and name not in local]


# =============================================================================
# Teardown rewrites
# =============================================================================

def _call_parts(tree: SourceTree, call: tree_sitter.Node) -> Optional[Tuple[str, str, List[str]]]:
    """Split ``obj.method(args)`` into (obj text, method, arg texts)."""
    fn = call.child_by_field_name("function")
    args = call.child_by_field_name("arguments")
    if fn is None or args is None or fn.type != "member_expression":
        return None
    obj = fn.child_by_field_name("object")
    prop = fn.child_by_field_name("property")
    if obj is None or prop is None:
        return None
    if "?." in tree.text(fn):
        return None
    arg_texts = [tree.text(a) for a in args.named_children if a.type != "comment"]
    return tree.text(obj), tree.text(prop), arg_texts


def _inside_guard(node: tree_sitter.Node, tree: SourceTree, guard: str) -> bool:
    """True if an enclosing ``if`` (up to two blocks out) already tests ``guard``."""
    current = node.parent
    for _ in range(4):
        if current is None:
            return False
        if current.type == "if_statement":
            condition = current.child_by_field_name("condition")
            return condition is not None and guard in tree.text(condition)
        current = current.parent
    return False


def _inside_try(node: tree_sitter.Node) -> bool:
    block = node.parent
    return block is not None and block.type == "statement_block" and block.parent is not None \
        and block.parent.type == "try_statement"


def _cleanup_edits(tree: SourceTree) -> List[Edit]:
    edits: List[Edit] = []
    for call in tree.find("call_expression"):
        parts = _call_parts(tree, call)
        if parts is None:
            continue
        obj, method, args = parts
        statement = call.parent if call.parent is not None and call.parent.type == "expression_statement" else None

        if method == "removeChild":
            if statement is not None and len(args) == 1:
                guard = f"{obj}.contains({args[0]})"
                if _inside_guard(statement, tree, guard):
                    continue
                replacement = f"if ({obj} && {guard}) {{ {obj}.removeChild({args[0]}); }}"
                if statement.parent is not None and statement.parent.type not in _STATEMENT_LIST_NODES:
                    # Brace-less body of if/else/loop: keep a trailing else bound to the outer if
                    replacement = f"{{ {replacement} }}"
                edits.append(Edit(statement.start_byte, statement.end_byte, replacement))
            else:
                edits.append(Edit(call.start_byte, call.end_byte, f"{obj}?.removeChild?.({', '.join(args)})"))

        elif method == "removeEventListener" and obj.endswith(".domElement"):
            fn = call.child_by_field_name("function")
            edits.append(Edit(fn.start_byte, fn.end_byte, f"{obj}?.removeEventListener"))

        elif method == "dispose" and statement is not None and not args:
            if _inside_try(statement):
                continue
            edits.append(Edit(
                statement.start_byte, statement.end_byte,
                f"try {{ {obj}.dispose(); }} catch (_err) {{}}",
            ))
    return edits


def apply_cleanup_patterns(code: str) -> str:
    """Rewrite unsafe teardown calls into guarded forms.

    - ``parent.removeChild(child);`` → containment-guarded ``if``
    - ``removeChild`` in expression position → optional chaining
    - ``x.domElement.removeEventListener`` → ``x.domElement?.removeEventListener``
    - ``x.dispose();`` → wrapped in ``try``/``catch``
    """
    current = code
    for _ in range(_MAX_CLEANUP_PASSES):
        tree = parse_best_effort(current)
        if tree.has_error:
            fixed = _FALLBACK_REMOVE_CHILD_RE.sub(r"\1.current?.removeChild?.(\2)", current)
            return _FALLBACK_DOM_LISTENER_RE.sub(r"\1.domElement?.removeEventListener", fixed)
        edits = _cleanup_edits(tree)
        if not edits:
            break
        current = tree.apply(edits)
    return current


# =============================================================================
# Public API
# =============================================================================

def normalize_imports(code: str) -> NormalizeResult:
    """Complete the framework import and apply teardown rewrites.

    Args:
        code: Modular component source

    Returns:
        NormalizeResult; ``success`` is False only on an unexpected internal error
    """
    try:
        match = _find_framework_import(code)
        if match is None:
            return NormalizeResult(success=True, code=code, warnings=[NO_IMPORT_WARNING])

        current = _split_specifiers(match.group("named"))
        current_names = {_imported_name(spec) for spec in current}

        used = find_used_primitives(code)
        missing = [name for name in used if name not in current_names]

        if not missing:
            cleaned = apply_cleanup_patterns(code)
            warnings = [ALL_IMPORTED_WARNING]
            if cleaned != code:
                warnings.append(CLEANUP_WARNING)
            return NormalizeResult(success=True, code=cleaned, warnings=warnings)

        merged = sorted(set(current) | set(missing))
        prefix = f"{FRAMEWORK_BINDING}, " if match.group("default") else ""
        statement = f"import {prefix}{{ {', '.join(merged)} }} from '{FRAMEWORK_NAME}';"
        rebuilt = code[:match.start()] + statement + code[match.end():]

        fixed = apply_cleanup_patterns(rebuilt)
        warnings = [f"Added missing React hook imports: {', '.join(missing)}"]
        if fixed != rebuilt:
            warnings.append(CLEANUP_WARNING)

        logger.debug(f"Import normalizer added: {missing}")
        return NormalizeResult(success=True, code=fixed, added_symbols=missing, warnings=warnings)

    except Exception as e:
        logger.error(f"Import normalization failed: {e}")
        return NormalizeResult(success=False, code=code, error=str(e))


def validate_imports(code: str) -> Tuple[bool, List[str]]:
    """Report missing primitives without rewriting.

    Returns:
        (valid, missing_symbols)
    """
    result = normalize_imports(code)
    return (not result.added_symbols, list(result.added_symbols))
