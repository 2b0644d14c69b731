"""Tests for markup lowering and type stripping."""

from canvasloom.core.compiler import contains_markup, is_module, transpile
from canvasloom.core.compiler.markup_transpiler import _clean_jsx_text


# =========================================================================
# Sample sources
# =========================================================================

SIMPLE = '''import React from 'react';

export default function Hello() {
  return <div className="hello">Hello</div>;
}
'''

FRAGMENT = '''import React from 'react';

export default function Pair() {
  return (
    <>
      <span />
      <span />
    </>
  );
}
'''

LIST = '''import React from 'react';

export default function List({ items }) {
  return (
    <ul>
      {items.map((item) => (
        <li key={item.id}>{item.label}</li>
      ))}
    </ul>
  );
}
'''

ATTRIBUTES = '''import React from 'react';

export default function Field(props) {
  return <input disabled {...props} data-role="field" />;
}
'''

COMPONENT_TAGS = '''import React from 'react';
import { Card } from './card.js';
import * as ui from './ui.js';

export default function Panel() {
  return <Card><ui.Title text='x' /></Card>;
}
'''

TYPED = '''import React, { useState } from 'react';

interface CounterProps {
  start: number;
}

type Label = string;

export default function Counter({ start }: CounterProps) {
  const [count, setCount] = useState<number>(start);
  const label = String(count) as Label;
  return <button onClick={() => setCount(count + 1)}>{label}</button>;
}
'''

BROKEN = '''import React from 'react';

export default function Broken() {
  return <div><span></div>;
}
'''

NO_BINDING = '''export default function Bare() {
  return <p>hi</p>;
}
'''


class TestMarkupDetection:
    def test_detects_elements(self):
        assert contains_markup(SIMPLE)

    def test_plain_code(self):
        assert not contains_markup("export const sum = (a, b) => a + b;\n")

    def test_empty(self):
        assert not contains_markup("")


class TestLowering:
    def test_simple_element(self):
        result = transpile(SIMPLE)

        assert result.success
        assert 'React.createElement("div", {className: "hello"}, "Hello")' in result.code
        assert result.code.startswith("import React from 'react';")
        assert "export default function Hello()" in result.code

    def test_fragment(self):
        result = transpile(FRAGMENT)

        assert result.success
        assert "React.createElement(React.Fragment, null" in result.code
        assert result.code.count('React.createElement("span", null)') == 2

    def test_nested_expression_markup(self):
        result = transpile(LIST)

        assert result.success
        assert 'React.createElement("ul", null' in result.code
        assert 'React.createElement("li", {key: item.id}, item.label)' in result.code
        assert "<li" not in result.code

    def test_boolean_spread_and_quoted_keys(self):
        result = transpile(ATTRIBUTES)

        assert result.success
        assert 'React.createElement("input", {disabled: true, ...props, "data-role": "field"})' in result.code

    def test_component_and_member_tags(self):
        result = transpile(COMPONENT_TAGS)

        assert result.success
        assert 'React.createElement(Card, null, React.createElement(ui.Title, {text: "x"}))' in result.code

    def test_envelope_preserved(self):
        result = transpile(LIST)
        assert is_module(result.code)

    def test_missing_binding_is_a_warning(self):
        result = transpile(NO_BINDING)

        assert result.success
        assert any("does not import it" in w for w in result.warnings)


class TestTypedSources:
    def test_types_are_stripped(self):
        result = transpile(TYPED)

        assert result.success
        assert "interface" not in result.code
        assert "type Label" not in result.code
        assert ": CounterProps" not in result.code
        assert "<number>" not in result.code
        assert " as Label" not in result.code
        assert "Removed TypeScript-only syntax" in result.warnings

    def test_typed_markup_is_lowered(self):
        result = transpile(TYPED)

        assert 'React.createElement("button", {onClick: () => setCount(count + 1)}, label)' in result.code
        assert "useState(start)" in result.code


class TestEnums:
    def test_numeric_enum_is_lowered(self):
        code = (
            "import React from 'react';\n"
            "enum Color { Red, Green = 5, Blue }\n"
            "export default function C(p: {c: Color}) { return <div>{p.c}</div>; }\n"
        )
        result = transpile(code)

        assert result.success
        assert "enum" not in result.code
        assert (
            'var Color; (function (Color) { Color[Color["Red"] = 0] = "Red"; '
            'Color[Color["Green"] = 5] = "Green"; Color[Color["Blue"] = 6] = "Blue"; })'
            "(Color || (Color = {}));"
        ) in result.code
        assert "function C(p) {" in result.code

    def test_exported_string_enum(self):
        code = "export enum Mode { Light = 'light', Dark = 'dark' }\n"
        result = transpile(code)

        assert result.success
        assert result.code.startswith(
            "export var Mode; (function (Mode) { Mode[\"Light\"] = 'light'; Mode[\"Dark\"] = 'dark'; })"
        )
        assert is_module(result.code)

    def test_member_without_initializer_after_string_fails(self):
        result = transpile("export enum E { A = 'a', B }\n")

        assert not result.success
        assert result.code is None
        assert "needs an initializer" in result.error


class TestParseFailure:
    def test_mismatched_tags(self):
        result = transpile(BROKEN)

        assert not result.success
        assert result.code is None
        assert result.error.startswith("Markup parse error")


class TestJsxText:
    def test_multiline_text_collapses(self):
        assert _clean_jsx_text("\n    Hello\n    world\n  ") == "Hello world"

    def test_inline_spaces_kept(self):
        assert _clean_jsx_text("Count: ") == "Count: "

    def test_whitespace_only_line_is_dropped(self):
        assert _clean_jsx_text("\n   \n") == ""
