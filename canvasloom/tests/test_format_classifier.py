"""Tests for format classification and the legacy wrapper."""

import pytest

from canvasloom.core.compiler import classify, convert_to_module, is_module
from canvasloom.core.errors import UnsupportedFormatError
from canvasloom.core.models import Dialect, ModuleFormat


# =========================================================================
# Sample sources
# =========================================================================

MARKUP_MODULE = '''import React from 'react';

export default function Hello() {
  return <div className="hello">Hello</div>;
}
'''

MARKUP_SCRIPT = '''const Component = () => {
  return <div>Legacy</div>;
};
'''

TYPED_MODULE = '''import React from 'react';

interface Props {
  title: string;
}

export default function Card({ title }: Props) {
  return <h1>{title}</h1>;
}
'''

PLAIN_MODULE = '''export const add = (a, b) => a + b;
'''

NAMED_EXPORT_LIST = '''const A = () => null;
export { A };
'''


class TestModuleDetection:
    def test_import_and_default_export(self):
        assert classify(MARKUP_MODULE).format is ModuleFormat.MODULE

    def test_export_list(self):
        assert is_module(NAMED_EXPORT_LIST)

    def test_markup_without_import_export_is_legacy(self):
        info = classify(MARKUP_SCRIPT)
        assert info.format is ModuleFormat.LEGACY_SCRIPT
        assert info.dialect is Dialect.MARKUP

    def test_empty_input(self):
        info = classify("")
        assert info.format is ModuleFormat.LEGACY_SCRIPT
        assert info.dialect is Dialect.PLAIN
        assert not is_module("   \n")

    def test_import_word_inside_string_is_not_module(self):
        assert not is_module('const s = "import x from y";\n')


class TestDialectDetection:
    def test_markup(self):
        assert classify(MARKUP_MODULE).dialect is Dialect.MARKUP

    def test_typed(self):
        info = classify(TYPED_MODULE)
        assert info.format is ModuleFormat.MODULE
        assert info.dialect is Dialect.TYPED

    def test_react_fc_annotation_is_typed(self):
        code = "export const Box: React.FC = () => null;\n"
        assert classify(code).dialect is Dialect.TYPED

    def test_plain(self):
        assert classify(PLAIN_MODULE).dialect is Dialect.PLAIN


class TestLegacyConversion:
    def test_wraps_component_definition(self):
        code = "const Component = () => React.createElement('div', null, 'hi');"
        converted = convert_to_module(code)

        assert converted.startswith(
            "import React, { useState, useEffect, useRef, useMemo, useCallback } from 'react';"
        )
        assert converted.rstrip().endswith("export default Component;")
        assert code in converted
        assert is_module(converted)

    def test_module_is_unchanged(self):
        assert convert_to_module(MARKUP_MODULE) == MARKUP_MODULE

    def test_missing_component_definition(self):
        with pytest.raises(UnsupportedFormatError):
            convert_to_module("function Widget() { return null; }")
