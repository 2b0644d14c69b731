"""Tests for URL validation, response checks and the component library."""

import asyncio
import json

import httpx
import pytest

from canvasloom.core.config import PipelineSettings
from canvasloom.core.errors import SourceFetchError
from canvasloom.core.sources import ComponentLibrary, LibraryEntry, URLImportService
from canvasloom.core.sources.library import apply_doc_tags, parse_doc_tags
from canvasloom.core.sources import url_import
from canvasloom.core.sources.url_import import describe_url, looks_like_code

COMPONENT = '''import React from 'react';

export default function Widget() {
  return React.createElement('div', null, 'widget');
}
'''

DOC_HEADER = '''/**
 * Digital Clock
 *
 * @category Data
 * @tags clock, time
 * @author Someone
 */
export default function Clock() { return null; }
'''


@pytest.fixture
def service(settings):
    return URLImportService(settings)


class TestValidateUrl:
    def test_trusted_https(self, service):
        service.validate_url("https://esm.sh/widget@1.0.0")
        service.validate_url("https://cdn.jsdelivr.net/npm/widget@1/index.js")

    def test_invalid_format(self, service):
        with pytest.raises(SourceFetchError, match="Invalid URL format"):
            service.validate_url("not a url")

    def test_https_required(self, service):
        with pytest.raises(SourceFetchError, match="HTTPS"):
            service.validate_url("http://esm.sh/widget")

    def test_localhost_may_use_http(self, service):
        service.validate_url("http://localhost:5173/components/a.js")

    def test_untrusted_domain(self, service):
        with pytest.raises(SourceFetchError, match="evil.test is not in the allowed list"):
            service.validate_url("https://evil.test/a.js")

    def test_lookalike_domain_is_rejected(self, service):
        with pytest.raises(SourceFetchError):
            service.validate_url("https://notesm.sh/a.js")

    def test_configured_domains(self):
        service = URLImportService(PipelineSettings(trusted_domains=["components.internal"]))
        service.validate_url("https://components.internal/a.js")
        with pytest.raises(SourceFetchError):
            service.validate_url("https://esm.sh/a.js")


class TestResponseChecks:
    def test_html_is_not_code(self):
        assert not looks_like_code("<!DOCTYPE html><html></html>")

    def test_cdn_error_body(self):
        assert not looks_like_code("404 Not Found: package does not exist on the registry", "https://esm.sh/x")

    def test_component_source(self):
        assert looks_like_code(COMPONENT, "https://unpkg.com/x@1/index.js")

    def test_prose_is_not_code(self):
        assert not looks_like_code("just some words here")


class TestDescribeUrl:
    def test_cdn_package(self):
        name, hint, meta = describe_url("https://unpkg.com/cool-card@3.2.1/dist/card.jsx", COMPONENT)

        assert name == "card"
        assert hint == "esm"
        assert meta["package_name"] == "cool-card"
        assert meta["package_version"] == "3.2.1"
        assert meta["cdn_provider"] == "unpkg"

    def test_github_raw(self):
        url = "https://raw.githubusercontent.com/octo/widgets/main/src/Button.tsx"
        name, hint, meta = describe_url(url, "const Button: React.FC = () => null;")

        assert name == "Button"
        assert hint == "tsx"
        assert meta["author"] == "octo"
        assert meta["repo"] == "widgets"
        assert meta["branch"] == "main"
        assert meta["filepath"] == "src/Button.tsx"


class TestFetch:
    def make_service(self, settings, status=200, body=COMPONENT):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status, text=body)

        return URLImportService(settings, transport=httpx.MockTransport(handler)), calls

    def test_fetch(self, settings):
        service, calls = self.make_service(settings)
        fetched = asyncio.run(service.fetch("https://esm.sh/widget@1.0.0/widget.js"))

        assert fetched.code == COMPONENT
        assert fetched.name == "widget"
        assert calls[0].headers["accept"] == "application/javascript, text/javascript, text/plain"

    def test_remembered_copy(self, settings):
        service, calls = self.make_service(settings)
        url = "https://esm.sh/widget@1.0.0/widget.js"
        service.remember(url, COMPONENT)

        asyncio.run(service.fetch(url))
        assert calls == []

        asyncio.run(service.fetch(url, use_cache=False))
        assert len(calls) == 1

        service.forget(url)
        asyncio.run(service.fetch(url))
        assert len(calls) == 2

    def test_remembered_urls_are_capped(self, settings, monkeypatch):
        monkeypatch.setattr(url_import, "URL_CACHE_MAX_ENTRIES", 3)
        service, _ = self.make_service(settings)
        urls = [f"https://esm.sh/w{n}@1.0.0/w{n}.js" for n in range(5)]
        for url in urls:
            service.remember(url, COMPONENT)

        assert list(service._url_cache) == urls[2:]

    def test_expired_urls_are_swept(self, settings, monkeypatch):
        service, _ = self.make_service(settings)
        service.remember("https://esm.sh/old@1.0.0/old.js", COMPONENT)
        later = url_import.time.monotonic() + url_import.URL_CACHE_MAX_AGE_S + 1
        monkeypatch.setattr(url_import.time, "monotonic", lambda: later)

        service.remember("https://esm.sh/new@1.0.0/new.js", COMPONENT)

        assert list(service._url_cache) == ["https://esm.sh/new@1.0.0/new.js"]

    def test_empty_body(self, settings):
        service, _ = self.make_service(settings, body="   ")
        with pytest.raises(SourceFetchError, match="empty response"):
            asyncio.run(service.fetch("https://unpkg.com/a@1/a.js"))

    def test_non_code_body(self, settings):
        service, _ = self.make_service(settings, body="<html><body>oops</body></html>")
        with pytest.raises(SourceFetchError, match="valid JavaScript"):
            asyncio.run(service.fetch("https://unpkg.com/a@1/a.js"))

    def test_status_error(self, settings):
        service, _ = self.make_service(settings, status=500, body="")
        with pytest.raises(SourceFetchError, match="500 Internal Server Error"):
            asyncio.run(service.fetch("https://unpkg.com/a@1/a.js"))

    def test_network_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = URLImportService(settings, transport=httpx.MockTransport(handler))
        with pytest.raises(SourceFetchError, match="connection refused"):
            asyncio.run(service.fetch("https://unpkg.com/a@1/a.js"))

    def test_timeout(self, settings):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        service = URLImportService(settings, transport=httpx.MockTransport(handler))
        with pytest.raises(SourceFetchError, match="Request timeout"):
            asyncio.run(service.fetch("https://unpkg.com/a@1/a.js"))


class TestDocTags:
    def test_parse(self):
        assert parse_doc_tags(DOC_HEADER) == {"category": "Data", "tags": "clock, time", "author": "Someone"}

    def test_no_header(self):
        assert parse_doc_tags(COMPONENT) == {}

    def test_manifest_values_win(self):
        entry = LibraryEntry(id="clock", name="Clock", url="/c.js", category="UI", tags=["time"])
        apply_doc_tags(entry, DOC_HEADER)

        assert entry.category == "UI"
        assert entry.tags == ["time"]
        assert entry.author == "Someone"

    def test_defaults_are_filled(self):
        entry = apply_doc_tags(LibraryEntry(id="clock", name="Clock", url="/c.js"), DOC_HEADER)

        assert entry.category == "Data"
        assert entry.tags == ["clock", "time"]

    def test_unknown_category_is_ignored(self):
        entry = apply_doc_tags(LibraryEntry(id="clock", name="Clock", url="/c.js"), "/**\n * @category Gadgets\n */\n")

        assert entry.category == "Utility"


class TestComponentLibrary:
    def test_builtins(self, settings):
        library = ComponentLibrary(settings)

        assert library.get("simple-counter").name == "Simple Counter"
        assert [e.id for e in library.list_entries("UI")] == ["button-animated"]

    def test_builtins_are_not_shared(self, settings):
        first = ComponentLibrary(settings)
        apply_doc_tags(first.get("simple-counter"), "/**\n * @author Changed\n */\n")

        assert ComponentLibrary(settings).get("simple-counter").author is None

    def test_search(self, settings):
        library = ComponentLibrary(settings)

        assert [e.id for e in library.search("ANIMATION")] == ["button-animated"]
        assert library.search("nothing-like-this") == []

    def test_resolve_url(self):
        library = ComponentLibrary(PipelineSettings(library_base_url="https://cdn.test/lib/"), entries=[])

        relative = LibraryEntry(id="a", name="A", url="/components/a.js")
        absolute = LibraryEntry(id="b", name="B", url="https://esm.sh/b@1")
        assert library.resolve_url(relative) == "https://cdn.test/lib/components/a.js"
        assert library.resolve_url(absolute) == "https://esm.sh/b@1"

    def test_yaml_manifest(self, tmp_path):
        manifest = tmp_path / "library.yaml"
        manifest.write_text(
            "components:\n"
            "  - id: tabs\n"
            "    name: Simple Tabs\n"
            "    url: /components/simple-tabs.js\n"
            "    category: Layout\n"
            "  - name: missing id\n",
            encoding="utf-8",
        )
        library = ComponentLibrary(PipelineSettings(library_manifest_path=str(manifest)))

        assert [e.id for e in library.list_entries()] == ["tabs"]
        assert library.get("tabs").category == "Layout"

    def test_json_manifest(self, tmp_path):
        manifest = tmp_path / "library.json"
        manifest.write_text(json.dumps([{"id": "x", "name": "X", "url": "/x.js"}]), encoding="utf-8")

        entries = ComponentLibrary.load_manifest(str(manifest))
        assert [e.id for e in entries] == ["x"]

    def test_unreadable_manifest_falls_back_to_builtins(self, tmp_path):
        entries = ComponentLibrary.load_manifest(str(tmp_path / "missing.yaml"))
        assert {e.id for e in entries} == {"button-animated", "simple-counter"}
