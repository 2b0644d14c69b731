"""Pipeline error taxonomy.

Every stage raises one of these; the orchestrator collapses them into a
failed ProcessingResult, so none of them escape ``ComponentPipeline.process``.
"""

from typing import List, Optional


class PipelineError(Exception):
    """Base class for all stage errors."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class MissingSourceError(PipelineError):
    """Input code is empty or absent."""


class UnsupportedFormatError(PipelineError):
    """Source cannot be turned into a loadable module."""


class ImportNormalizationError(PipelineError):
    """Import normalizer failed unexpectedly."""


class TranspileError(PipelineError):
    """Markup lowering failed or corrupted the module envelope."""

    def __init__(self, message: str, warnings: Optional[List[str]] = None):
        super().__init__(message)
        self.warnings = list(warnings or [])


class ModuleResolutionError(PipelineError):
    """A module specifier could not be rewritten."""


class LoadTimeoutError(PipelineError):
    """The dynamic import did not settle within the timeout."""


class ExecutionValidationError(PipelineError):
    """The module loaded but threw, or produced no usable export."""


class NoComponentFoundError(ExecutionValidationError):
    """The module namespace holds no callable component export."""


class CacheIOError(PipelineError):
    """The durable store rejected a read or write."""


class SourceFetchError(PipelineError):
    """Remote component text could not be fetched or was rejected."""
