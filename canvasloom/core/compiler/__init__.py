"""Compiler stages: classify, wrap legacy scripts, normalize imports,
lower markup, resolve specifiers."""

from .format_classifier import classify, contains_typed_syntax, is_module
from .import_normalizer import apply_cleanup_patterns, normalize_imports, validate_imports
from .legacy import convert_to_module
from .markup_transpiler import contains_markup, transpile
from .specifier_resolver import SpecifierResolver, extract_dependencies

__all__ = [
    "classify",
    "contains_typed_syntax",
    "is_module",
    "apply_cleanup_patterns",
    "normalize_imports",
    "validate_imports",
    "convert_to_module",
    "contains_markup",
    "transpile",
    "SpecifierResolver",
    "extract_dependencies",
]
