"""CanvasLoom: compile, validate and cache canvas UI components."""

__version__ = "0.1.0"
