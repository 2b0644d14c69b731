"""Curated component library.

The library is a manifest of entries that point at component files by URL.
Relative URLs are resolved against ``library_base_url``. A component file
may carry a JSDoc header whose tags fill in missing manifest fields:

    /**
     * Simple Counter Component
     *
     * @category Utility
     * @tags counter, increment, state
     * @author Stiqr
     * @version 1.0.0
     */
"""

import json
import logging
import re
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urljoin

import yaml

from ..config import PipelineSettings, get_settings

logger = logging.getLogger(__name__)

_DOC_BLOCK_RE = re.compile(r"^\s*/\*\*(.*?)\*/", re.DOTALL)
_DOC_TAG_RE = re.compile(r"@(\w+)[ \t]+([^\n]*)")

CATEGORIES = ("UI", "Data", "Forms", "Charts", "Layout", "Utility")


@dataclass
class LibraryEntry:
    id: str
    name: str
    url: str
    description: str = ""
    category: str = "Utility"
    tags: List[str] = field(default_factory=list)
    source: str = "builtin"
    author: Optional[str] = None
    version: Optional[str] = None

    def to_metadata(self) -> Dict:
        """Fields attached to a processed component's metadata."""
        meta = {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "source_url": self.url,
        }
        if self.author:
            meta["author"] = self.author
        if self.version:
            meta["version"] = self.version
        return meta

    def to_dict(self) -> Dict:
        return asdict(self)


BUILTIN_ENTRIES = (
    LibraryEntry(
        id="button-animated",
        name="Animated Button",
        description="A button with hover animations and click effects",
        category="UI",
        tags=["button", "animation", "interactive"],
        url="/components/animated-button.js",
    ),
    LibraryEntry(
        id="simple-counter",
        name="Simple Counter",
        description="A counter with increment and decrement buttons",
        category="Utility",
        tags=["counter", "increment", "decrement", "state"],
        url="/components/simple-counter.js",
    ),
)


def _builtin_entries() -> List[LibraryEntry]:
    return [replace(e, tags=list(e.tags)) for e in BUILTIN_ENTRIES]


def parse_doc_tags(code: str) -> Dict[str, str]:
    """Read ``@tag value`` pairs from a leading JSDoc block."""
    match = _DOC_BLOCK_RE.match(code)
    if not match:
        return {}
    tags = {}
    for line in match.group(1).splitlines():
        tag = _DOC_TAG_RE.search(line.strip().lstrip("*"))
        if tag:
            tags[tag.group(1)] = tag.group(2).strip()
    return tags


def apply_doc_tags(entry: LibraryEntry, code: str) -> LibraryEntry:
    """Fill entry fields the manifest left unset from the file's doc tags."""
    tags = parse_doc_tags(code)
    if "category" in tags and entry.category == "Utility":
        if tags["category"] in CATEGORIES:
            entry.category = tags["category"]
        else:
            logger.warning(f"Ignoring unknown category {tags['category']!r} for {entry.id}")
    if "tags" in tags and not entry.tags:
        entry.tags = [t.strip() for t in tags["tags"].split(",") if t.strip()]
    if "author" in tags and not entry.author:
        entry.author = tags["author"]
    if "version" in tags and not entry.version:
        entry.version = tags["version"]
    return entry


class ComponentLibrary:
    """Manifest lookup for curated components."""

    def __init__(self, settings: Optional[PipelineSettings] = None, entries: Optional[List[LibraryEntry]] = None):
        settings = settings or get_settings()
        self.base_url = settings.library_base_url.rstrip("/") + "/"
        if entries is None:
            entries = self.load_manifest(settings.library_manifest_path)
        self._entries: Dict[str, LibraryEntry] = {e.id: e for e in entries}

    @staticmethod
    def load_manifest(path: Optional[str]) -> List[LibraryEntry]:
        """Load entries from a YAML or JSON manifest, or the built-ins."""
        if not path:
            return _builtin_entries()

        manifest = Path(path)
        try:
            with open(manifest, "r") as f:
                if manifest.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Error loading library manifest {path}: {e}")
            return _builtin_entries()

        raw_entries = data.get("components", []) if isinstance(data, dict) else (data or [])
        entries = []
        for raw in raw_entries:
            try:
                entries.append(LibraryEntry(**raw))
            except TypeError as e:
                logger.warning(f"Skipping invalid manifest entry {raw!r}: {e}")
        logger.info(f"Loaded {len(entries)} library components from {path}")
        return entries

    def get(self, component_id: str) -> Optional[LibraryEntry]:
        return self._entries.get(component_id)

    def list_entries(self, category: Optional[str] = None) -> List[LibraryEntry]:
        entries = list(self._entries.values())
        if category:
            entries = [e for e in entries if e.category == category]
        return entries

    def search(self, query: str) -> List[LibraryEntry]:
        q = query.lower()
        return [
            e for e in self._entries.values()
            if q in e.name.lower() or q in e.description.lower() or any(q in t.lower() for t in e.tags)
        ]

    def resolve_url(self, entry: LibraryEntry) -> str:
        """Absolute URL for an entry's component file."""
        if entry.url.startswith(("http://", "https://")):
            return entry.url
        return urljoin(self.base_url, entry.url.lstrip("/"))
