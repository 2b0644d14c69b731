"""Component pipeline orchestrator.

Sequences one request through the stages:

    classify → (wrap legacy) → normalize imports → (transpile markup)
      → execute (resolve, materialize, import, extract) → (cache write)

and collapses every outcome into a ProcessingResult. Nothing raised by a
stage escapes :meth:`ComponentPipeline.process`.

Failure policy:
- normalize/transpile failures: no artifact, no cache write
- execution failures: the compiled code is attached for debugging (and kept
  in the DebugArtifactStore), never cached
- only validated modules are cached, and only when caching applies

Usage:
    pipeline = ComponentPipeline.from_settings()
    result = await pipeline.process(SourceModule(code=src))
    result = await pipeline.process_url("https://esm.sh/some-widget@1.0.0")
"""

import asyncio
import dataclasses
import logging
import time
from typing import Dict, Iterable, List, Optional, Union

from ..cache import ComponentCache, DebugArtifactStore, MemoryStore, SqlStore
from ..cache.store import PersistenceStore
from ..compiler import classify, contains_markup, convert_to_module, normalize_imports, transpile
from ..config import PipelineSettings, get_settings
from ..constants import COMPILER_TAG_SUFFIX
from ..errors import (
    CacheIOError,
    ImportNormalizationError,
    MissingSourceError,
    PipelineError,
    SourceFetchError,
    TranspileError,
)
from ..loader import ModuleExecutor, NodeModuleLoader
from ..loader.base import EphemeralModuleLoader
from ..models import (
    CompiledArtifact,
    Dialect,
    ModuleFormat,
    PipelineOptions,
    ProcessingResult,
    Provenance,
    SourceModule,
    content_hash,
    now_ms,
)
from ..sources import ComponentLibrary, LibraryEntry, URLImportService, apply_doc_tags
from .metrics import PerformanceMetrics

logger = logging.getLogger(__name__)

# Provenances cached when the request does not say otherwise
CACHED_BY_DEFAULT = (Provenance.LIBRARY, Provenance.URL_IMPORT)

# Source metadata copied onto the artifact
ENRICHMENT_FIELDS = (
    "name", "description", "tags", "category", "author", "version", "source_url", "prompt",
    "generation_time_ms", "package_name", "package_version", "cdn_provider", "repo", "branch", "filepath",
    "format_hint",
)


class ComponentPipeline:
    """Compiles, validates and caches components from every source.

    Attributes:
        loader: Owns the ephemeral module handles
        executor: Loads and validates compiled modules
        cache: Validated-artifact cache
        debug_store: Recently failed artifacts, for diagnostics
        url_service: Remote source fetcher
        library: Curated component manifest
    """

    def __init__(
        self,
        loader: EphemeralModuleLoader,
        store: Optional[PersistenceStore] = None,
        settings: Optional[PipelineSettings] = None,
        url_service: Optional[URLImportService] = None,
        library: Optional[ComponentLibrary] = None,
    ):
        settings = settings or get_settings()
        self.settings = settings
        self.version_tag = f"{settings.compiler_version}{COMPILER_TAG_SUFFIX}"

        self.loader = loader
        self.executor = ModuleExecutor(loader, settings=settings)
        self.cache = ComponentCache(loader, store, settings=settings)
        self.debug_store = DebugArtifactStore(settings.debug_ttl_seconds, settings.debug_max_entries)
        self.url_service = url_service or URLImportService(settings)
        self.library = library or ComponentLibrary(settings)
        self.metrics = PerformanceMetrics(settings.metrics_window)

    @classmethod
    def from_settings(cls, settings: Optional[PipelineSettings] = None) -> "ComponentPipeline":
        """Build a pipeline with the Node loader and the configured store."""
        settings = settings or get_settings()
        loader = NodeModuleLoader(settings)
        if not loader.is_available():
            logger.warning(f"Node runtime '{settings.node_binary}' not found; every load will fail")

        store: Optional[PersistenceStore]
        if settings.store_url:
            try:
                store = SqlStore(settings.store_url, settings.store_max_value_bytes)
            except CacheIOError as e:
                logger.warning(f"Durable store unavailable, caching disabled: {e}")
                store = None
        else:
            store = MemoryStore(settings.store_max_value_bytes)

        return cls(loader, store, settings=settings)

    # =========================================================================
    # Core entry point
    # =========================================================================

    async def process(self, source: SourceModule) -> ProcessingResult:
        """Compile and validate one component.

        Args:
            source: The request

        Returns:
            ProcessingResult; never raises
        """
        start = time.perf_counter()
        warnings: List[str] = []
        try:
            result = await self._process(source, warnings, start)
        except PipelineError as e:
            if isinstance(e, TranspileError):
                warnings.extend(w for w in e.warnings if w not in warnings)
            result = self._failure(e, warnings, start)
        except Exception as e:
            logger.error(f"Unexpected pipeline failure: {e}", exc_info=True)
            result = ProcessingResult(
                success=False,
                error=str(e),
                error_kind=type(e).__name__,
                warnings=warnings,
                elapsed_ms=self._elapsed(start),
            )

        self.metrics.record("esm_modules_processed", 1)
        self.metrics.record("esm_processing_time", result.elapsed_ms)
        if result.success:
            self.metrics.record("successful_compilations", 1)
        else:
            self.metrics.record("compilation_errors", 1)
        return result

    async def _process(self, source: SourceModule, warnings: List[str], start: float) -> ProcessingResult:
        options = source.options
        source = await self._with_remote_code(source)

        code = source.code
        if not code or not code.strip():
            raise MissingSourceError("No code provided")

        use_cache = self.should_cache(source)
        info = classify(code)
        module_format = source.declared_format or info.format
        if options.debug:
            logger.debug(f"Processing {source.provenance.value} component as {module_format.value}/{info.dialect.value}")

        input_hash = content_hash(code)
        key = self.cache.make_key(source.provenance, input_hash)

        if use_cache and not options.force_recompile:
            entry = self.cache.get(key)
            if entry is not None:
                self.metrics.record("cache_hit", 1)
                artifact = dataclasses.replace(entry.artifact, metadata=dict(entry.artifact.metadata))
                self._enrich(artifact, source)
                if options.debug:
                    logger.debug(f"Cache hit {key[:12]} (hits={entry.hit_count})")
                return ProcessingResult(
                    success=True,
                    artifact=artifact,
                    warnings=warnings,
                    elapsed_ms=self._elapsed(start),
                    cache_hit=True,
                )

        # Normalizing
        module_code = code
        if module_format is ModuleFormat.LEGACY_SCRIPT:
            module_code = convert_to_module(code)
            warnings.append("Converted legacy script to ES module")

        normalized = normalize_imports(module_code)
        if not normalized.success:
            raise ImportNormalizationError(normalized.error or "Import normalization failed")
        warnings.extend(normalized.warnings)
        compiled = normalized.code

        # Transpiling
        if info.dialect is Dialect.TYPED or (info.dialect is Dialect.MARKUP and contains_markup(compiled)):
            transpiled = transpile(compiled, debug=options.debug)
            if not transpiled.success:
                raise TranspileError(transpiled.error or "Markup transpilation failed", transpiled.warnings)
            warnings.extend(transpiled.warnings)
            compiled = transpiled.code

        artifact = CompiledArtifact(
            compiled_code=compiled,
            input_hash=input_hash,
            output_hash=content_hash(compiled),
            compiled_at=now_ms(),
            compiler_version_tag=self.version_tag,
        )
        self._enrich(artifact, source)

        # Executing
        execution = await self.executor.execute_module(
            compiled,
            debug=options.debug,
            cache=self.cache if use_cache and not options.force_recompile else None,
            timeout_ms=options.timeout_ms,
        )
        warnings.extend(execution.warnings)

        if not execution.success:
            self.debug_store.record(artifact, execution.error or "")
            return ProcessingResult(
                success=False,
                artifact=artifact,
                error=execution.error,
                error_kind=execution.error_kind,
                warnings=warnings,
                elapsed_ms=self._elapsed(start),
            )

        artifact.load_url = execution.load_url
        artifact.component_export = execution.component.export_name if execution.component else None
        if execution.metadata is not None:
            artifact.byte_size = execution.metadata.byte_size
            artifact.dependencies = list(execution.metadata.dependencies)
            artifact.metadata["load_time_ms"] = round(execution.metadata.load_time_ms, 2)

        if execution.from_cache:
            self.metrics.record("cache_hit", 1)

        if use_cache:
            if not self.cache.put(key, artifact, owns_handle=not execution.from_cache):
                artifact.load_url = None
        elif not execution.from_cache:
            # One-shot load: nothing keeps the handle alive
            self.loader.release(artifact.load_url)
            artifact.load_url = None

        return ProcessingResult(
            success=True,
            artifact=artifact,
            warnings=warnings,
            elapsed_ms=self._elapsed(start),
            cache_hit=execution.from_cache,
        )

    def should_cache(self, source: SourceModule) -> bool:
        """Library components always cache; otherwise the request decides,
        falling back to the provenance default."""
        if source.provenance is Provenance.LIBRARY:
            return True
        if source.options.use_cache is not None:
            return source.options.use_cache
        return source.provenance in CACHED_BY_DEFAULT

    async def _with_remote_code(self, source: SourceModule) -> SourceModule:
        """Fetch text for library/URL sources submitted without code."""
        if source.code and source.code.strip():
            return source
        if source.provenance not in CACHED_BY_DEFAULT or not source.source_url:
            return source

        fetched = await self.url_service.fetch(
            source.source_url,
            use_cache=source.options.use_cache is not False,
            validate=source.provenance is Provenance.URL_IMPORT,
        )
        metadata = {"name": fetched.name, **fetched.metadata, **source.metadata}
        return dataclasses.replace(source, code=fetched.code, metadata=metadata)

    @staticmethod
    def _enrich(artifact: CompiledArtifact, source: SourceModule) -> None:
        for name in ENRICHMENT_FIELDS:
            if name in source.metadata and source.metadata[name] is not None:
                artifact.metadata[name] = source.metadata[name]
        if source.source_url:
            artifact.metadata["source_url"] = source.source_url
        artifact.metadata["provenance"] = source.provenance.value

    def _failure(self, error: PipelineError, warnings: List[str], start: float) -> ProcessingResult:
        logger.debug(f"Pipeline failed with {error.kind}: {error}")
        return ProcessingResult(
            success=False,
            error=str(error),
            error_kind=error.kind,
            warnings=warnings,
            elapsed_ms=self._elapsed(start),
        )

    @staticmethod
    def _elapsed(start: float) -> float:
        return (time.perf_counter() - start) * 1000

    # =========================================================================
    # Provenance entry points
    # =========================================================================

    async def process_generated(
        self,
        code: str,
        prompt: str = "",
        generation_time_ms: float = 0.0,
        options: Optional[PipelineOptions] = None,
    ) -> ProcessingResult:
        """Process a component produced by the generation client."""
        source = SourceModule(
            code=code,
            provenance=Provenance.GENERATED,
            options=options or PipelineOptions(),
            metadata={"prompt": prompt, "description": prompt, "generation_time_ms": generation_time_ms},
        )
        return await self.process(source)

    async def process_library_component(
        self,
        entry: Union[LibraryEntry, str],
        options: Optional[PipelineOptions] = None,
    ) -> ProcessingResult:
        """Fetch and process a curated library component (always cached)."""
        start = time.perf_counter()
        if isinstance(entry, str):
            found = self.library.get(entry)
            if found is None:
                return self._failure(SourceFetchError(f"Unknown library component: {entry}"), [], start)
            entry = found

        url = self.library.resolve_url(entry)
        try:
            fetched = await self.url_service.fetch(url, validate=False)
        except SourceFetchError as e:
            self.metrics.record("compilation_errors", 1)
            return self._failure(e, [], start)

        apply_doc_tags(entry, fetched.code)
        opts = dataclasses.replace(options or PipelineOptions(), use_cache=True)
        source = SourceModule(
            code=fetched.code,
            provenance=Provenance.LIBRARY,
            options=opts,
            source_url=url,
            metadata=entry.to_metadata(),
        )
        return await self.process(source)

    async def process_url(self, url: str, options: Optional[PipelineOptions] = None) -> ProcessingResult:
        """Import a component from an allow-listed URL."""
        start = time.perf_counter()
        options = options or PipelineOptions()
        try:
            fetched = await self.url_service.fetch(url, use_cache=options.use_cache is not False)
        except SourceFetchError as e:
            self.url_service.forget(url)
            self.metrics.record("compilation_errors", 1)
            return self._failure(e, [], start)

        source = SourceModule(
            code=fetched.code,
            provenance=Provenance.URL_IMPORT,
            options=options,
            source_url=url,
            metadata={"name": fetched.name, "format_hint": fetched.format_hint, **fetched.metadata},
        )
        result = await self.process(source)
        if result.success:
            self.url_service.remember(url, fetched.code, fetched.etag)
        else:
            self.url_service.forget(url)
        return result

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def warm_cache(self, sources: Iterable[SourceModule]) -> int:
        """Process sources with caching forced on; returns how many succeeded."""
        sources = list(sources)
        logger.info(f"Warming cache with {len(sources)} components")
        results = await asyncio.gather(*(
            self.process(dataclasses.replace(s, options=dataclasses.replace(s.options, use_cache=True)))
            for s in sources
        ))
        successful = sum(1 for r in results if r.success)
        logger.info(f"Cache warming complete: {successful}/{len(sources)} components cached")
        return successful

    def clear_cache(self) -> None:
        """Release every cached handle and drop failed-artifact records."""
        self.cache.clear()
        self.debug_store.clear()
        self.metrics.record("cache_cleared", 1)

    def get_performance_stats(self) -> Dict:
        stats = self.metrics.summary()
        stats["cache_size"] = len(self.cache)
        stats["compiler_version"] = self.version_tag
        stats["cache"] = self.cache.stats()
        stats["pending_loads"] = self.executor.pending_count
        stats["live_handles"] = self.loader.live_count
        stats["debug_artifacts"] = len(self.debug_store)
        return stats

    def close(self) -> None:
        self.loader.close()
