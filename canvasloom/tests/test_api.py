"""Tests for the HTTP API."""

import httpx
import pytest
from fastapi.testclient import TestClient

from canvasloom.api.app import create_app
from canvasloom.core.cache import MemoryStore
from canvasloom.core.models import content_hash
from canvasloom.core.pipeline import ComponentPipeline
from canvasloom.core.sources import ComponentLibrary, LibraryEntry, URLImportService

COUNTER = '''import React from 'react';

export default function Counter() {
  const [n, setN] = useState(0);
  return React.createElement('button', { onClick: () => setN(n + 1) }, n);
}
'''

LIBRARY_URL = "http://localhost:5173/components/simple-counter.js"


@pytest.fixture
def pipeline(fake_loader, settings):
    def handler(request):
        if str(request.url) == LIBRARY_URL:
            return httpx.Response(200, text=COUNTER)
        return httpx.Response(404)

    return ComponentPipeline(
        fake_loader,
        MemoryStore(),
        settings,
        url_service=URLImportService(settings, transport=httpx.MockTransport(handler)),
        library=ComponentLibrary(settings, entries=[
            LibraryEntry(id="simple-counter", name="Simple Counter", url="/components/simple-counter.js"),
            LibraryEntry(id="fancy", name="Fancy", url="/components/fancy.js", category="UI"),
        ]),
    )


@pytest.fixture
def client(pipeline):
    return TestClient(create_app(pipeline))


class TestCompileEndpoint:
    def test_compile(self, client):
        response = client.post("/api/components/compile", json={"code": COUNTER})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert "useState" in body["artifact"]["compiled_code"].splitlines()[0]
        assert body["artifact"]["metadata"]["provenance"] == "user-provided"

    def test_generated_with_prompt(self, client):
        response = client.post(
            "/api/components/compile",
            json={"code": COUNTER, "provenance": "generated", "prompt": "a counter"},
        )

        assert response.json()["artifact"]["metadata"]["prompt"] == "a counter"

    def test_pipeline_failure_is_200(self, client):
        response = client.post("/api/components/compile", json={"code": ""})

        assert response.status_code == 200
        assert response.json()["error_kind"] == "MissingSourceError"

    def test_invalid_request(self, client):
        response = client.post("/api/components/compile", json={"provenance": "somewhere"})
        assert response.status_code == 422

    def test_cached_compile(self, client):
        payload = {"code": COUNTER, "options": {"use_cache": True}}
        client.post("/api/components/compile", json=payload)

        assert client.post("/api/components/compile", json=payload).json()["cache_hit"] is True


class TestUrlImportEndpoint:
    def test_rejected_domain(self, client):
        response = client.post("/api/components/import-url", json={"url": "https://evil.test/a.js"})

        assert response.status_code == 200
        assert response.json()["error_kind"] == "SourceFetchError"


class TestLibraryEndpoints:
    def test_list(self, client):
        body = client.get("/api/components/library").json()
        assert body["count"] == 2

    def test_list_by_category(self, client):
        body = client.get("/api/components/library", params={"category": "UI"}).json()
        assert [c["id"] for c in body["components"]] == ["fancy"]

    def test_process(self, client):
        response = client.post("/api/components/library/simple-counter")

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_unknown_component(self, client):
        assert client.post("/api/components/library/nope").status_code == 404


class TestMaintenanceEndpoints:
    def test_stats(self, client):
        client.post("/api/components/compile", json={"code": COUNTER})
        stats = client.get("/api/components/stats").json()

        assert stats["esm_modules_processed"]["count"] == 1
        assert stats["compiler_version"] == "1.0.0-esm"

    def test_debug_artifact(self, client, fake_loader):
        fake_loader.exports = {}
        client.post("/api/components/compile", json={"code": COUNTER})

        response = client.get(f"/api/components/debug/{content_hash(COUNTER)}")
        assert response.status_code == 200
        assert response.json()["error"] == "No valid React component found in module"
        assert client.get("/api/components/debug/unknown").status_code == 404

    def test_clear_cache(self, client, pipeline):
        client.post("/api/components/compile", json={"code": COUNTER, "options": {"use_cache": True}})

        response = client.delete("/api/components/cache")

        assert response.json() == {"success": True, "message": "Component cache cleared"}
        assert len(pipeline.cache) == 0

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok", "service": "canvasloom"}
