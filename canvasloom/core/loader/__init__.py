"""Module loading: handle lifecycle, Node runtime, executor."""

from .base import EphemeralModuleLoader
from .executor import ModuleExecutor, extract_component
from .node_loader import NodeModuleLoader

__all__ = ["EphemeralModuleLoader", "ModuleExecutor", "NodeModuleLoader", "extract_component"]
