"""Ephemeral module loader capability.

A loader turns source text into a one-shot importable module and imports it.
Handles are content-addressed and reference counted: materializing identical
code twice yields the same URL with two references, and the underlying
resource is destroyed exactly once when the last reference is released.
Destruction is deferred while a load of that URL is still running.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Set

from ..errors import ExecutionValidationError
from ..models import ModuleHandle, ModuleNamespace, content_hash

logger = logging.getLogger(__name__)


class EphemeralModuleLoader(ABC):
    """Base class with handle bookkeeping; subclasses own the resources.

    Subclasses implement:
        _url_for(digest): URL for a content digest
        _create(url, code): materialize the module
        _destroy(url): remove it
        _import(handle): import it and describe its exports
    """

    def __init__(self):
        self._refs: Dict[str, int] = {}
        self._in_flight: Dict[str, int] = {}
        self._deferred: Set[str] = set()
        self.destroyed_count = 0

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def _url_for(self, digest: str) -> str:
        ...

    @abstractmethod
    def _create(self, url: str, code: str) -> None:
        ...

    @abstractmethod
    def _destroy(self, url: str) -> None:
        ...

    @abstractmethod
    async def _import(self, handle: ModuleHandle) -> ModuleNamespace:
        ...

    @abstractmethod
    def is_ephemeral(self, url: str) -> bool:
        """True if ``url`` names a handle that does not survive a restart."""
        ...

    # -------------------------------------------------------------------------
    # Handle lifecycle
    # -------------------------------------------------------------------------

    def materialize(self, code: str) -> ModuleHandle:
        """Create (or re-reference) the module for ``code``."""
        digest = content_hash(code)
        url = self._url_for(digest)

        if url in self._refs:
            self._refs[url] += 1
        elif url in self._deferred:
            # Released while loading; the resource still exists
            self._deferred.discard(url)
            self._refs[url] = 1
        else:
            self._create(url, code)
            self._refs[url] = 1
            logger.debug(f"Materialized module {digest[:12]}")

        return ModuleHandle(url=url, digest=digest)

    def retain(self, url: str) -> bool:
        """Add a reference to a live handle."""
        if url not in self._refs:
            return False
        self._refs[url] += 1
        return True

    def release(self, url: str) -> bool:
        """Drop one reference; destroy the module when none remain.

        Returns:
            False if ``url`` was not live (nothing released)
        """
        count = self._refs.get(url)
        if not count:
            return False

        if count > 1:
            self._refs[url] = count - 1
            return True

        del self._refs[url]
        if self._in_flight.get(url):
            self._deferred.add(url)
        else:
            self._destroy_once(url)
        return True

    def is_live(self, url: str) -> bool:
        return url in self._refs

    def ref_count(self, url: str) -> int:
        return self._refs.get(url, 0)

    @property
    def live_count(self) -> int:
        return len(self._refs)

    def _destroy_once(self, url: str) -> None:
        self._destroy(url)
        self.destroyed_count += 1
        logger.debug(f"Destroyed module handle {url}")

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self, handle: ModuleHandle) -> ModuleNamespace:
        """Import a live handle and return its export descriptors."""
        url = handle.url
        if not self.is_live(url):
            raise ExecutionValidationError(f"Module handle is no longer live: {url}")

        self._in_flight[url] = self._in_flight.get(url, 0) + 1
        try:
            return await self._import(handle)
        finally:
            remaining = self._in_flight[url] - 1
            if remaining:
                self._in_flight[url] = remaining
            else:
                del self._in_flight[url]
                if url in self._deferred:
                    self._deferred.discard(url)
                    self._destroy_once(url)

    def close(self) -> None:
        """Destroy every remaining handle regardless of references."""
        for url in list(self._refs) + list(self._deferred):
            self._destroy_once(url)
        self._refs.clear()
        self._deferred.clear()
