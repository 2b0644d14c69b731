"""CanvasLoom HTTP API."""
