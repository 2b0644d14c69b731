"""Component sources: remote URL imports and the curated library."""

from .library import ComponentLibrary, LibraryEntry, apply_doc_tags, parse_doc_tags
from .url_import import FetchedSource, URLImportService, describe_url, looks_like_code

__all__ = [
    "ComponentLibrary",
    "LibraryEntry",
    "apply_doc_tags",
    "parse_doc_tags",
    "FetchedSource",
    "URLImportService",
    "describe_url",
    "looks_like_code",
]
