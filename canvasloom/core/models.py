"""Data contracts for the component pipeline.

Plain dataclasses passed between the compiler stages, the loader, the cache
and the orchestrator. No behavior beyond (de)serialization lives here.
"""

import hashlib
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .constants import CACHE_HIT_WEIGHT


def content_hash(text: str) -> str:
    """SHA-256 hex digest of a source string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Provenance(Enum):
    """Channel a component's source arrived through."""
    GENERATED = "generated"
    LIBRARY = "library"
    URL_IMPORT = "url-import"
    USER_PROVIDED = "user-provided"


class ModuleFormat(Enum):
    MODULE = "module"
    LEGACY_SCRIPT = "legacy-script"


class Dialect(Enum):
    PLAIN = "plain"
    TYPED = "typed"
    MARKUP = "markup"


@dataclass(frozen=True)
class FormatInfo:
    format: ModuleFormat
    dialect: Dialect


@dataclass(frozen=True)
class PipelineOptions:
    """Per-request switches.

    ``use_cache=None`` means "use the provenance default" (library and URL
    imports cache, generated and pasted code do not).
    """
    use_cache: Optional[bool] = None
    force_recompile: bool = False
    debug: bool = False
    timeout_ms: Optional[int] = None


@dataclass(frozen=True)
class SourceModule:
    """One compile request. Never mutated after submission."""
    code: str
    provenance: Provenance = Provenance.GENERATED
    declared_format: Optional[ModuleFormat] = None
    options: PipelineOptions = field(default_factory=PipelineOptions)
    source_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass
class CompiledArtifact:
    """Output of a compile.

    ``load_url`` is an ephemeral handle owned either by the cache or by the
    caller that received it; it must be released when discarded.
    """
    compiled_code: str
    input_hash: str
    output_hash: str
    compiled_at: int
    compiler_version_tag: str
    load_url: Optional[str] = None
    byte_size: int = 0
    dependencies: List[str] = field(default_factory=list)
    component_export: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compiled_code": self.compiled_code,
            "input_hash": self.input_hash,
            "output_hash": self.output_hash,
            "compiled_at": self.compiled_at,
            "compiler_version_tag": self.compiler_version_tag,
            "load_url": self.load_url,
            "byte_size": self.byte_size,
            "dependencies": list(self.dependencies),
            "component_export": self.component_export,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompiledArtifact":
        return cls(
            compiled_code=data["compiled_code"],
            input_hash=data["input_hash"],
            output_hash=data["output_hash"],
            compiled_at=int(data["compiled_at"]),
            compiler_version_tag=data["compiler_version_tag"],
            load_url=data.get("load_url"),
            byte_size=int(data.get("byte_size", 0)),
            dependencies=list(data.get("dependencies") or []),
            component_export=data.get("component_export"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class CacheEntry:
    key: str  # content_hash("<provenance>:<input_hash>")
    artifact: CompiledArtifact
    created_at: int
    last_access_at: int
    hit_count: int = 0
    byte_size: int = 0

    @property
    def score(self) -> int:
        """Eviction score; lowest scores are pruned first."""
        return self.last_access_at + self.hit_count * CACHE_HIT_WEIGHT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "artifact": self.artifact.to_dict(),
            "created_at": self.created_at,
            "last_access_at": self.last_access_at,
            "hit_count": self.hit_count,
            "byte_size": self.byte_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            artifact=CompiledArtifact.from_dict(data["artifact"]),
            created_at=int(data["created_at"]),
            last_access_at=int(data["last_access_at"]),
            hit_count=int(data.get("hit_count", 0)),
            byte_size=int(data.get("byte_size", 0)),
        )


@dataclass
class ProcessingResult:
    """What ``ComponentPipeline.process`` returns for every request."""
    success: bool
    artifact: Optional[CompiledArtifact] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    cache_hit: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "artifact": self.artifact.to_dict() if self.artifact else None,
            "error": self.error,
            "error_kind": self.error_kind,
            "warnings": list(self.warnings),
            "elapsed_ms": round(self.elapsed_ms, 2),
            "cache_hit": self.cache_hit,
        }


# =============================================================================
# Stage results
# =============================================================================

@dataclass
class NormalizeResult:
    success: bool
    code: str = ""
    added_symbols: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class TranspileResult:
    success: bool
    code: Optional[str] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


# =============================================================================
# Loader contracts
# =============================================================================

@dataclass(frozen=True)
class ModuleHandle:
    """A materialized module: where to import it from, and its content digest."""
    url: str
    digest: str


@dataclass
class ExportInfo:
    """One export of a loaded module, as seen by the JS runtime.

    ``kind`` is the JS ``typeof`` of the value ("function", "object", ...);
    ``properties`` maps own keys to their ``typeof`` when the value is an object.
    """
    name: str
    kind: str
    properties: Dict[str, str] = field(default_factory=dict)

    @property
    def callable(self) -> bool:
        return self.kind == "function"


@dataclass
class ModuleNamespace:
    """Ordered export descriptors of a loaded module."""
    exports: Dict[str, ExportInfo] = field(default_factory=dict)

    def get(self, name: str) -> Optional[ExportInfo]:
        return self.exports.get(name)

    def names(self) -> List[str]:
        return list(self.exports)

    @classmethod
    def from_descriptor(cls, descriptor: Dict[str, Any]) -> "ModuleNamespace":
        """Build from ``{name: {"type": ..., "props": {...}}}``."""
        exports = {}
        for name, info in descriptor.items():
            exports[name] = ExportInfo(
                name=name,
                kind=str(info.get("type", "undefined")),
                properties=dict(info.get("props") or {}),
            )
        return cls(exports=exports)


@dataclass(frozen=True)
class ComponentRef:
    """Which export holds the component: "default", "Component", "Card" or "default.Card"."""
    export_name: str


@dataclass
class ExecutionMetadata:
    load_time_ms: float
    byte_size: int
    dependencies: List[str] = field(default_factory=list)


@dataclass
class ExecutionResult:
    success: bool
    component: Optional[ComponentRef] = None
    load_url: Optional[str] = None
    metadata: Optional[ExecutionMetadata] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    from_cache: bool = False
