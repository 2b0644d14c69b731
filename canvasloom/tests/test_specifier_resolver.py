"""Tests for module specifier resolution."""

import pytest

from canvasloom.core.compiler import SpecifierResolver, extract_dependencies
from canvasloom.core.config import PipelineSettings
from canvasloom.core.errors import ModuleResolutionError


# =========================================================================
# Sample sources
# =========================================================================

MIXED_IMPORTS = '''import React, { useState } from 'react';
import { createRoot } from "react-dom/client";
import confetti from 'canvas-confetti';
import { helper } from './helper.js';
import 'https://cdn.example.com/side-effect.js';
export { format } from 'date-fns';
export * from '../shared.js';

export const note = "import x from 'lodash'";

export default function App() {
  return React.createElement('div', null, helper(format(new Date())));
}
'''


@pytest.fixture
def resolver():
    return SpecifierResolver(PipelineSettings(shim_base_url="http://localhost:5173"))


class TestResolve:
    def test_framework_maps_to_shim(self, resolver):
        assert resolver.resolve("react") == "http://localhost:5173/shims/react.js"

    def test_dom_and_client_share_a_shim(self, resolver):
        assert resolver.resolve("react-dom") == "http://localhost:5173/shims/react-dom.js"
        assert resolver.resolve("react-dom/client") == "http://localhost:5173/shims/react-dom.js"

    def test_jsx_runtime(self, resolver):
        assert resolver.resolve("react/jsx-runtime") == "http://localhost:5173/shims/react-jsx-runtime.js"

    def test_bare_specifier_goes_to_mirror(self, resolver):
        assert resolver.resolve("canvas-confetti") == "https://esm.sh/canvas-confetti?external=react,react-dom"

    def test_scoped_and_deep_specifiers(self, resolver):
        assert resolver.resolve("@scope/pkg/sub") == "https://esm.sh/@scope/pkg/sub?external=react,react-dom"

    def test_urls_and_relative_paths_pass_through(self, resolver):
        for spec in ("https://x.test/a.js", "http://x.test/b.js", "./local", "../b.js"):
            assert resolver.resolve(spec) == spec

    def test_idempotent(self, resolver):
        for spec in ("react", "react-dom/client", "lodash", "./a.js"):
            once = resolver.resolve(spec)
            assert resolver.resolve(once) == once

    def test_empty_specifier(self, resolver):
        with pytest.raises(ModuleResolutionError):
            resolver.resolve("")

    def test_trailing_slash_on_shim_base(self):
        resolver = SpecifierResolver(PipelineSettings(shim_base_url="http://localhost:5173/"))
        assert resolver.resolve("react") == "http://localhost:5173/shims/react.js"


class TestRewrite:
    def test_rewrites_import_and_export_sources(self, resolver):
        code = resolver.rewrite(MIXED_IMPORTS)

        assert "from 'http://localhost:5173/shims/react.js';" in code
        assert 'from "http://localhost:5173/shims/react-dom.js";' in code
        assert "from 'https://esm.sh/canvas-confetti?external=react,react-dom';" in code
        assert "from 'https://esm.sh/date-fns?external=react,react-dom';" in code
        assert "from './helper.js';" in code
        assert "export * from '../shared.js';" in code
        assert "import 'https://cdn.example.com/side-effect.js';" in code

    def test_string_literals_are_untouched(self, resolver):
        code = resolver.rewrite(MIXED_IMPORTS)
        assert "export const note = \"import x from 'lodash'\";" in code

    def test_rewrite_is_idempotent(self, resolver):
        once = resolver.rewrite(MIXED_IMPORTS)
        assert resolver.rewrite(once) == once

    def test_unparseable_source_uses_line_fallback(self, resolver):
        code = "import React from 'react';\nexport default () => <div>{</div>;\n"
        rewritten = resolver.rewrite(code)
        assert rewritten.startswith("import React from 'http://localhost:5173/shims/react.js';")


class TestDependencies:
    def test_unique_in_source_order(self):
        code = (
            "import a from 'lodash';\n"
            "import b from 'react';\n"
            "import c from 'lodash';\n"
            "export default a;\n"
        )
        assert extract_dependencies(code) == ["lodash", "react"]

    def test_includes_reexports(self):
        deps = extract_dependencies(MIXED_IMPORTS)
        assert deps == [
            "react",
            "react-dom/client",
            "canvas-confetti",
            "./helper.js",
            "https://cdn.example.com/side-effect.js",
            "date-fns",
            "../shared.js",
        ]
