# Subpackages are imported explicitly by callers, e.g.
# `from canvasloom.core.pipeline import ComponentPipeline`, so that the
# tree-sitter grammars and the HTTP client are only loaded when used.
