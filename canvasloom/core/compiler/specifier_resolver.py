"""Module specifier resolver.

Rewrites import sources so a materialized module can be loaded from a
temporary location. Rules, first match wins:

1. ``http://`` / ``https://`` URLs pass through
2. ``./`` and ``../`` paths pass through
3. framework entry points map to the local shims, which re-export the one
   shared framework instance
4. anything else is served by the content-delivery mirror with the framework
   marked external, so mirrored packages never bundle a second copy
"""

import logging
import re
from typing import Dict, List, Optional

from ..ast_parser import Edit, SourceTree, parse_best_effort
from ..config import PipelineSettings, get_settings
from ..errors import ModuleResolutionError

logger = logging.getLogger(__name__)

# import x from 'y' / import 'y' / export { x } from 'y' / export * from 'y'
_FALLBACK_SOURCE_RE = re.compile(
    r"^(\s*(?:import\s*|(?:import|export)\b[^'\";]*?\bfrom\s*))(['\"])([^'\"]+)\2",
    re.MULTILINE,
)


class SpecifierResolver:
    """Maps module specifiers to loadable URLs."""

    def __init__(self, settings: Optional[PipelineSettings] = None):
        settings = settings or get_settings()
        self.mirror_host = settings.mirror_host
        base = settings.shim_base_url.rstrip("/")
        framework = settings.framework_name
        dom = settings.framework_dom_name
        self.external = f"{framework},{dom}"
        self.shims: Dict[str, str] = {
            framework: f"{base}/shims/{framework}.js",
            dom: f"{base}/shims/{dom}.js",
            f"{dom}/client": f"{base}/shims/{dom}.js",
            f"{framework}/jsx-runtime": f"{base}/shims/{framework}-jsx-runtime.js",
        }

    def resolve(self, specifier: str) -> str:
        """Resolve one specifier.

        Raises:
            ModuleResolutionError: If the specifier is empty
        """
        if not isinstance(specifier, str) or not specifier.strip():
            raise ModuleResolutionError(f"Cannot resolve empty module specifier: {specifier!r}")

        if specifier.startswith(("http://", "https://")):
            return specifier
        if specifier.startswith(("./", "../")):
            return specifier
        if specifier in self.shims:
            return self.shims[specifier]
        return f"https://{self.mirror_host}/{specifier}?external={self.external}"

    def rewrite(self, code: str) -> str:
        """Rewrite the source of every import and re-export in ``code``."""
        tree = parse_best_effort(code)
        if tree.has_error:
            return self._rewrite_fallback(code)

        edits: List[Edit] = []
        for node in self._source_nodes(tree):
            specifier = SourceTree.string_value(node, tree.source)
            resolved = self.resolve(specifier)
            if resolved == specifier:
                continue
            quote = tree.text(node)[0]
            edits.append(Edit(node.start_byte, node.end_byte, f"{quote}{resolved}{quote}"))
            logger.debug(f"Resolved {specifier} -> {resolved}")

        return tree.apply(edits) if edits else code

    def _rewrite_fallback(self, code: str) -> str:
        def replace(match: re.Match) -> str:
            resolved = self.resolve(match.group(3))
            return f"{match.group(1)}{match.group(2)}{resolved}{match.group(2)}"

        return _FALLBACK_SOURCE_RE.sub(replace, code)

    @staticmethod
    def _source_nodes(tree: SourceTree):
        for statement in tree.root.children:
            if statement.type not in ("import_statement", "export_statement"):
                continue
            source = statement.child_by_field_name("source")
            if source is not None and source.type == "string":
                yield source


def extract_dependencies(code: str) -> List[str]:
    """Unique import/re-export specifiers in source order."""
    tree = parse_best_effort(code)
    if tree.has_error:
        found = [m.group(3) for m in _FALLBACK_SOURCE_RE.finditer(code)]
    else:
        found = [SourceTree.string_value(n, tree.source) for n in SpecifierResolver._source_nodes(tree)]
    return list(dict.fromkeys(found))
