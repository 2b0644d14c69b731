"""Module executor.

Takes compiled module code through Resolving → Materializing → Importing →
Extracting and reports whether a usable component came out. Concurrent
requests for the same resolved module share one pending load. Timeouts are
soft: the caller stops waiting but the load keeps running, and a later
identical request joins it until it settles.

The executor reads the cache (by output hash) but never writes to it.
"""

import asyncio
import logging
import time
from typing import Dict, Optional, Tuple

from ..compiler.format_classifier import is_module
from ..compiler.specifier_resolver import SpecifierResolver, extract_dependencies
from ..config import PipelineSettings, get_settings
from ..errors import (
    ExecutionValidationError,
    LoadTimeoutError,
    MissingSourceError,
    NoComponentFoundError,
    PipelineError,
    UnsupportedFormatError,
)
from ..models import (
    ComponentRef,
    ExecutionMetadata,
    ExecutionResult,
    ModuleHandle,
    ModuleNamespace,
    content_hash,
)
from .base import EphemeralModuleLoader

logger = logging.getLogger(__name__)

# Names that never count as components
_IGNORED_EXPORTS = ("__esModule",)


def _is_capitalized(name: str) -> bool:
    return bool(name) and name[0].isupper()


def extract_component(namespace: ModuleNamespace) -> ComponentRef:
    """Pick the component export.

    Order:
    1. ``default`` if callable
    2. ``Component`` if callable
    3. first callable capitalized export
    4. first callable capitalized property of an object ``default``

    Raises:
        NoComponentFoundError: If nothing matches
    """
    default = namespace.get("default")
    if default is not None and default.callable:
        return ComponentRef("default")

    named = namespace.get("Component")
    if named is not None and named.callable:
        return ComponentRef("Component")

    for name, info in namespace.exports.items():
        if name in _IGNORED_EXPORTS or name == "default":
            continue
        if _is_capitalized(name) and info.callable:
            return ComponentRef(name)

    if default is not None and default.kind == "object":
        for prop, kind in default.properties.items():
            if _is_capitalized(prop) and kind == "function":
                return ComponentRef(f"default.{prop}")

    raise NoComponentFoundError("No valid React component found in module")


class ModuleExecutor:
    """Loads compiled modules and validates that they export a component.

    Attributes:
        loader: EphemeralModuleLoader that owns module handles
        resolver: SpecifierResolver applied before materializing
    """

    def __init__(
        self,
        loader: EphemeralModuleLoader,
        resolver: Optional[SpecifierResolver] = None,
        settings: Optional[PipelineSettings] = None,
    ):
        settings = settings or get_settings()
        self.loader = loader
        self.resolver = resolver or SpecifierResolver(settings)
        self.default_timeout_ms = settings.default_timeout_ms
        self._pending: Dict[str, asyncio.Task] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def execute_module(
        self,
        code: str,
        debug: bool = False,
        cache=None,
        timeout_ms: Optional[int] = None,
    ) -> ExecutionResult:
        """Load ``code`` and extract its component.

        On success the caller owns one reference to ``result.load_url``
        (unless ``from_cache``, where the cache keeps ownership).

        Args:
            code: Compiled module source, before specifier resolution
            debug: Log each state transition
            cache: Optional ComponentCache consulted by output hash
            timeout_ms: Soft import timeout (default from settings)

        Returns:
            ExecutionResult; never raises for stage errors
        """
        start = time.perf_counter()
        timeout_ms = timeout_ms or self.default_timeout_ms

        # Classifying
        if not code or not code.strip():
            return self._failure(MissingSourceError("No code provided"), start)
        if not is_module(code):
            return self._failure(
                UnsupportedFormatError("Code is not a valid ES module. Use legacy executor for non-ESM code."),
                start,
            )

        if cache is not None:
            entry = cache.find_by_output_hash(content_hash(code))
            if entry is not None:
                artifact = entry.artifact
                if debug:
                    logger.debug(f"Executor cache hit for {artifact.output_hash[:12]}")
                return ExecutionResult(
                    success=True,
                    component=ComponentRef(artifact.component_export or "default"),
                    load_url=artifact.load_url,
                    metadata=ExecutionMetadata(
                        load_time_ms=0.0,
                        byte_size=artifact.byte_size,
                        dependencies=list(artifact.dependencies),
                    ),
                    from_cache=True,
                )

        # Resolving
        try:
            final_code = self.resolver.rewrite(code)
        except PipelineError as e:
            return self._failure(e, start)
        if debug:
            logger.debug(f"Resolved specifiers ({len(final_code)} chars)")

        # Materializing
        handle = self.loader.materialize(final_code)

        # Importing + Extracting
        task = self._pending.get(handle.url)
        if task is None:
            task = asyncio.ensure_future(self._load_and_extract(handle))
            self._pending[handle.url] = task
            task.add_done_callback(lambda t, url=handle.url: self._settle(url, t))
        elif debug:
            logger.debug(f"Joining in-flight load of {handle.url}")

        try:
            component, load_time_ms = await asyncio.wait_for(asyncio.shield(task), timeout_ms / 1000)
        except asyncio.TimeoutError:
            self.loader.release(handle.url)
            return self._failure(LoadTimeoutError(f"Module import timeout after {timeout_ms}ms"), start)
        except PipelineError as e:
            self.loader.release(handle.url)
            return self._failure(e, start)
        except Exception as e:
            self.loader.release(handle.url)
            logger.error(f"Unexpected module load failure: {e}")
            return self._failure(ExecutionValidationError(str(e)), start)

        metadata = ExecutionMetadata(
            load_time_ms=load_time_ms,
            byte_size=len(final_code.encode("utf-8")),
            dependencies=extract_dependencies(final_code),
        )
        if debug:
            logger.debug(
                f"Validated {component.export_name} export "
                f"({metadata.byte_size} bytes, {len(metadata.dependencies)} deps, {load_time_ms:.1f}ms)"
            )
        return ExecutionResult(success=True, component=component, load_url=handle.url, metadata=metadata)

    async def _load_and_extract(self, handle: ModuleHandle) -> Tuple[ComponentRef, float]:
        started = time.perf_counter()
        namespace = await self.loader.load(handle)
        load_time_ms = (time.perf_counter() - started) * 1000
        return extract_component(namespace), load_time_ms

    def _settle(self, url: str, task: asyncio.Task) -> None:
        if self._pending.get(url) is task:
            del self._pending[url]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Load of {url} settled with error: {task.exception()}")

    @staticmethod
    def _failure(error: PipelineError, start: float) -> ExecutionResult:
        logger.debug(f"Execution failed after {(time.perf_counter() - start) * 1000:.1f}ms: {error}")
        return ExecutionResult(success=False, error=str(error), error_kind=error.kind)
