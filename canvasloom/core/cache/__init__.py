"""Artifact caching: component cache, durable stores, failed-artifact store."""

from .component_cache import ComponentCache
from .debug_store import DebugArtifactStore
from .store import MemoryStore, PersistenceStore, SqlStore

__all__ = ["ComponentCache", "DebugArtifactStore", "MemoryStore", "PersistenceStore", "SqlStore"]
