"""Short-lived store for artifacts of failed executions.

Failed compiles never enter the component cache, but their compiled code is
useful for a while afterwards ("why did this not load?"). Entries expire
after a TTL and the store keeps at most ``max_entries``, oldest first out.
"""

import logging
import time
from collections import OrderedDict
from typing import Dict, Optional, Tuple

from ..models import CompiledArtifact

logger = logging.getLogger(__name__)


class DebugArtifactStore:
    """Bounded TTL map of input hash → (artifact, error)."""

    def __init__(self, ttl_seconds: float = 300.0, max_entries: int = 20):
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[CompiledArtifact, str, float]]" = OrderedDict()

    def record(self, artifact: CompiledArtifact, error: str) -> None:
        key = artifact.input_hash
        self._entries.pop(key, None)
        self._entries[key] = (artifact, error, time.monotonic())
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        logger.debug(f"Kept failed artifact {key[:12]} for debugging")

    def get(self, input_hash: str) -> Optional[Tuple[CompiledArtifact, str]]:
        self._expire()
        item = self._entries.get(input_hash)
        if item is None:
            return None
        return item[0], item[1]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._expire()
        return len(self._entries)

    def stats(self) -> Dict:
        return {"entries": len(self), "ttl_seconds": self._ttl, "max_entries": self._max_entries}

    def _expire(self) -> None:
        cutoff = time.monotonic() - self._ttl
        for key in [k for k, (_, _, at) in self._entries.items() if at < cutoff]:
            del self._entries[key]
