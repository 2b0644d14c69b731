"""Shared fixtures: an in-memory module loader and default settings."""

import asyncio
from typing import Dict, List, Optional

import pytest

from canvasloom.core.config import PipelineSettings
from canvasloom.core.errors import ExecutionValidationError
from canvasloom.core.loader.base import EphemeralModuleLoader
from canvasloom.core.models import ModuleHandle, ModuleNamespace

DEFAULT_EXPORTS = {"default": {"type": "function", "props": {}}}


class FakeLoader(EphemeralModuleLoader):
    """Loader that never runs JavaScript.

    Every import returns ``exports`` (or raises ``error``) after ``delay``
    seconds and is counted in ``import_count``.
    """

    def __init__(self):
        super().__init__()
        self.modules: Dict[str, str] = {}
        self.created: List[str] = []
        self.destroyed: List[str] = []
        self.import_count = 0
        self.delay = 0.0
        self.exports = dict(DEFAULT_EXPORTS)
        self.error: Optional[Exception] = None

    def _url_for(self, digest: str) -> str:
        return f"fake://modules/{digest}.mjs"

    def _create(self, url: str, code: str) -> None:
        self.modules[url] = code
        self.created.append(url)

    def _destroy(self, url: str) -> None:
        self.modules.pop(url, None)
        self.destroyed.append(url)

    async def _import(self, handle: ModuleHandle) -> ModuleNamespace:
        self.import_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ModuleNamespace.from_descriptor(self.exports)

    def is_ephemeral(self, url: str) -> bool:
        return url.startswith("fake://")

    def fail_with(self, message: str) -> None:
        self.error = ExecutionValidationError(message)


@pytest.fixture
def settings():
    return PipelineSettings()


@pytest.fixture
def fake_loader():
    loader = FakeLoader()
    yield loader
    loader.close()
