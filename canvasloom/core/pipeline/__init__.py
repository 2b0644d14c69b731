"""Pipeline orchestration and performance counters."""

from .component_pipeline import ComponentPipeline
from .metrics import PerformanceMetrics

__all__ = ["ComponentPipeline", "PerformanceMetrics"]
