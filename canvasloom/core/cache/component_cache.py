"""Content-addressed cache of validated component artifacts.

Keys are ``content_hash("<provenance>:<input_hash>")``. Each entry keeps
recency/frequency counters; when the cache grows past ``max_entries`` the
lowest-scoring quarter is evicted in the same call as the insert that
overflowed it. The whole map is written to a PersistenceStore after every
mutation.

Handle ownership: the cache holds exactly one loader reference per distinct
``load_url`` among its entries and releases it once no entry uses that URL.

Usage:
    cache = ComponentCache(loader, MemoryStore())
    key = cache.make_key(Provenance.LIBRARY, artifact.input_hash)
    cache.put(key, artifact)
    entry = cache.get(key)   # hit_count += 1
    cache.clear()            # releases every handle
"""

import json
import logging
import math
import threading
from typing import Dict, List, Optional, Set

from ..config import PipelineSettings, get_settings
from ..constants import COMPILER_TAG_SUFFIX
from ..errors import CacheIOError
from ..loader.base import EphemeralModuleLoader
from ..models import CacheEntry, CompiledArtifact, Provenance, content_hash, now_ms
from .store import PersistenceStore

logger = logging.getLogger(__name__)


class ComponentCache:
    """Score-evicted artifact cache with durable persistence.

    Caching is disabled when no store is supplied, and for the rest of the
    session after the store raises CacheIOError.

    Attributes:
        loader: Loader whose handles the cache's entries reference
        max_entries: Size ceiling that triggers pruning
        enabled: False once caching has been turned off
    """

    def __init__(
        self,
        loader: EphemeralModuleLoader,
        store: Optional[PersistenceStore] = None,
        settings: Optional[PipelineSettings] = None,
        max_entries: Optional[int] = None,
    ):
        settings = settings or get_settings()
        self.loader = loader
        self.max_entries = max_entries or settings.cache_max_entries
        self.prune_fraction = settings.cache_prune_fraction
        self.storage_key = settings.cache_storage_key
        self.version = f"{settings.compiler_version}{COMPILER_TAG_SUFFIX}"

        self._store = store
        self._entries: Dict[str, CacheEntry] = {}
        self._owned: Set[str] = set()
        self._lock = threading.RLock()
        self.enabled = store is not None

        if store is None:
            logger.info("No persistence store configured, component caching disabled")
        else:
            self._load()

    @staticmethod
    def make_key(provenance: Provenance, input_hash: str) -> str:
        return content_hash(f"{provenance.value}:{input_hash}")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        return list(self._entries)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return a live entry and count the hit, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._servable(entry):
                self._drop(key)
                self._persist()
                return None
            return self._touch(entry)

    def find_by_output_hash(self, output_hash: str) -> Optional[CacheEntry]:
        """Return the live entry whose compiled code hashes to ``output_hash``."""
        with self._lock:
            for key, entry in list(self._entries.items()):
                if entry.artifact.output_hash != output_hash:
                    continue
                if not self._servable(entry):
                    self._drop(key)
                    self._persist()
                    continue
                return self._touch(entry)
            return None

    def _servable(self, entry: CacheEntry) -> bool:
        url = entry.artifact.load_url
        if not url:
            return False
        return not self.loader.is_ephemeral(url) or self.loader.is_live(url)

    def _touch(self, entry: CacheEntry) -> CacheEntry:
        entry.hit_count += 1
        entry.last_access_at = now_ms()
        self._persist()
        return entry

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def put(self, key: str, artifact: CompiledArtifact, owns_handle: bool = True) -> bool:
        """Insert (or replace) an entry, then prune in the same step.

        Args:
            key: Cache key from :meth:`make_key`
            artifact: Validated artifact with a live ``load_url``
            owns_handle: True if the caller hands its loader reference to
                the cache; False if the cache must take its own

        Returns:
            False if caching is disabled (the caller's reference is released)
        """
        url = artifact.load_url
        with self._lock:
            if not self.enabled:
                if owns_handle and url:
                    self.loader.release(url)
                return False

            previous = self._entries.get(key)
            now = now_ms()
            self._entries[key] = CacheEntry(
                key=key,
                artifact=artifact,
                created_at=now,
                last_access_at=now,
                hit_count=previous.hit_count if previous else 0,
                byte_size=artifact.byte_size,
            )

            if url:
                if url in self._owned:
                    if owns_handle:
                        self.loader.release(url)
                elif owns_handle or self.loader.retain(url):
                    self._owned.add(url)

            if previous is not None and previous.artifact.load_url != url:
                self._release_if_unused(previous.artifact.load_url)

            self._prune(protect=key)
            self._persist()
            return self.enabled

    def prune(self) -> int:
        """Evict the lowest-scoring entries if over capacity."""
        with self._lock:
            removed = self._prune()
            if removed:
                self._persist()
            return removed

    def _prune(self, protect: Optional[str] = None) -> int:
        if len(self._entries) <= self.max_entries:
            return 0

        count = math.floor(len(self._entries) * self.prune_fraction)
        candidates = sorted(
            (e for k, e in self._entries.items() if k != protect),
            key=lambda e: e.score,
        )
        victims = candidates[:count]
        for entry in victims:
            self._drop(entry.key)

        logger.info(f"Pruned {len(victims)} cache entries ({len(self._entries)} remain)")
        return len(victims)

    def clear(self) -> None:
        """Drop every entry, release every handle and the persisted record."""
        with self._lock:
            for url in list(self._owned):
                self.loader.release(url)
            self._owned.clear()
            self._entries.clear()
            if self._store is not None and self.enabled:
                try:
                    self._store.remove(self.storage_key)
                except CacheIOError as e:
                    self._disable(e)
            logger.info("Component cache cleared")

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._release_if_unused(entry.artifact.load_url)

    def _release_if_unused(self, url: Optional[str]) -> None:
        if not url or url not in self._owned:
            return
        if any(e.artifact.load_url == url for e in self._entries.values()):
            return
        self._owned.discard(url)
        self.loader.release(url)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist(self) -> None:
        if self._store is None or not self.enabled:
            return
        payload = {
            "version": self.version,
            "entries": [[key, entry.to_dict()] for key, entry in self._entries.items()],
        }
        try:
            self._store.set(self.storage_key, json.dumps(payload))
        except CacheIOError as e:
            self._disable(e)

    def _load(self) -> None:
        try:
            raw = self._store.get(self.storage_key)
        except CacheIOError as e:
            self._disable(e)
            return
        if not raw:
            return

        try:
            payload = json.loads(raw)
            version = payload.get("version")
            records = payload.get("entries") or []
        except (ValueError, AttributeError) as e:
            logger.warning(f"Discarding corrupt persisted cache: {e}")
            self._remove_record()
            return

        if version != self.version:
            logger.info(f"Discarding persisted cache from compiler {version} (current {self.version})")
            self._remove_record()
            return

        dropped = 0
        for record in records:
            try:
                key, data = record
                entry = CacheEntry.from_dict(data)
            except (KeyError, TypeError, ValueError):
                dropped += 1
                continue
            url = entry.artifact.load_url
            if not url or self.loader.is_ephemeral(url):
                dropped += 1
                continue
            self._entries[key] = entry

        logger.info(f"Restored {len(self._entries)} cache entries ({dropped} dropped)")
        if dropped:
            self._persist()

    def _remove_record(self) -> None:
        try:
            self._store.remove(self.storage_key)
        except CacheIOError as e:
            self._disable(e)

    def _disable(self, error: CacheIOError) -> None:
        logger.warning(f"Component cache disabled for this session: {error}")
        self.enabled = False
        for url in list(self._owned):
            self.loader.release(url)
        self._owned.clear()
        self._entries.clear()

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def stats(self) -> Dict:
        """Get cache statistics.

        Returns:
            Dict with entry count, capacity, hits, bytes and owned handles
        """
        with self._lock:
            entries = list(self._entries.values())
            return {
                "enabled": self.enabled,
                "entries": len(entries),
                "max_entries": self.max_entries,
                "total_hits": sum(e.hit_count for e in entries),
                "total_bytes": sum(e.byte_size for e in entries),
                "owned_handles": len(self._owned),
                "version": self.version,
            }
