"""
Tests for structure metrics and formatting statistics.

Run with: pytest tests/
"""

from codewhisper.learning.metrics import (
    analyze_formatting,
    analyze_structure,
    complexity_band,
    cyclomatic_complexity,
    nesting_depth,
)
from codewhisper.parsing import EcmaScriptFrontEnd, NodeTag, PythonFrontEnd, RustFrontEnd

ROUTE_PY = (
    "def route(req, retries=3):\n"
    "    for attempt in range(retries):\n"
    "        if req.ok:\n"
    "            return req\n"
    "        elif req.retry:\n"
    "            continue\n"
    "    try:\n"
    "        send(req)\n"
    "    except IOError:\n"
    "        pass\n"
    "    return None\n"
)

NESTED_PY = (
    "def outer():\n"
    "    def inner(x):\n"
    "        if x:\n"
    "            return 1\n"
    "    return inner\n"
)


def first_function(tree):
    return next(node for node in tree.walk() if node.tag is NodeTag.FUNCTION_DEF)


class TestComplexity:
    """Tests for cyclomatic complexity and nesting depth."""

    def test_python_function(self) -> None:
        """Should count loops, branches and handlers as decision points."""
        func = first_function(PythonFrontEnd().parse(ROUTE_PY).tree)

        assert cyclomatic_complexity(func) == 5
        assert nesting_depth(func) == 3

    def test_straight_line_function(self) -> None:
        func = first_function(EcmaScriptFrontEnd().parse("function add(a,b){return a+b;}").tree)

        assert cyclomatic_complexity(func) == 1
        assert nesting_depth(func) == 0

    def test_switch_counts_cases(self) -> None:
        """Should add one path per case label."""
        source = "function f(x){ switch(x){ case 1: return 1; case 2: return 2; default: return 0; } }"
        func = first_function(EcmaScriptFrontEnd().parse(source).tree)

        assert cyclomatic_complexity(func) == 3
        assert nesting_depth(func) == 1

    def test_match_counts_arms(self) -> None:
        source = "fn f(n: u8) -> u8 {\n    match n {\n        0 => 1,\n        1 => 2,\n        _ => n,\n    }\n}\n"
        func = first_function(RustFrontEnd().parse(source).tree)

        assert cyclomatic_complexity(func) == 3

    def test_nested_functions_are_measured_separately(self) -> None:
        """Should not charge an inner function's branches to the outer one."""
        outer = first_function(PythonFrontEnd().parse(NESTED_PY).tree)
        inner = outer.children[0]

        assert cyclomatic_complexity(outer) == 1
        assert nesting_depth(outer) == 0
        assert cyclomatic_complexity(inner) == 2
        assert nesting_depth(inner) == 1

    def test_complexity_bands(self) -> None:
        assert [complexity_band(v) for v in (1, 5, 6, 10, 11)] == ["low", "low", "medium", "medium", "high"]


class TestAnalyzeStructure:
    """Tests for analyze_structure."""

    def test_module_summary(self) -> None:
        """Should summarize every function plus the module."""
        metrics = analyze_structure(PythonFrontEnd().parse(NESTED_PY).tree)

        assert metrics.function_count == 2
        assert metrics.class_count == 0
        assert metrics.cyclomatic_complexity == 2
        assert metrics.max_nesting_depth == 1
        assert [(f.name, f.line) for f in metrics.functions] == [("outer", 1), ("inner", 2)]
        assert metrics.average_complexity == 1.5

    def test_to_dict(self) -> None:
        data = analyze_structure(PythonFrontEnd().parse(ROUTE_PY).tree).to_dict()

        assert data["complexity_distribution"] == {"low": 1, "medium": 0, "high": 0}
        assert data["functions"][0] == {
            "name": "route",
            "line": 1,
            "cyclomatic_complexity": 5,
            "nesting_depth": 3,
        }


class TestFormatting:
    """Tests for analyze_formatting."""

    def test_spaced_style(self) -> None:
        """Should detect spaces around operators, after commas and after keywords."""
        stats = analyze_formatting("const a = b + c;\nfoo(a, b);\nif (a) {\n    bar();\n}\n")

        assert stats.spaced_operators is True
        assert stats.spaced_commas is True
        assert stats.spaced_keywords is True
        assert stats.indent_char == "spaces"
        assert stats.style()["operator_spacing"] == "spaced"

    def test_tight_style(self) -> None:
        stats = analyze_formatting("x=y+1;\nf(a,b);\nif(x){\n\tg();\n}\n")

        assert stats.spaced_operators is False
        assert stats.spaced_commas is False
        assert stats.spaced_keywords is False
        assert stats.indent_char == "tabs"
        assert stats.style()["comma_spacing"] == "tight"

    def test_line_length_statistics(self) -> None:
        """Should take the 95th percentile as the preferred maximum."""
        stats = analyze_formatting("a" * 10 + "\n" + "b" * 90 + "\n")

        assert stats.line_count == 2
        assert stats.average_line_length == 50.0
        assert stats.median_line_length == 90
        assert stats.preferred_max_length == 90
        assert stats.line_limit() == "100"

    def test_padding_inside_delimiters(self) -> None:
        stats = analyze_formatting("f( a )\nx = [1]\n")

        assert stats.padded_parentheses is True
        assert stats.padded_brackets is False

    def test_empty_source(self) -> None:
        stats = analyze_formatting("")

        assert stats.line_count == 0
        assert stats.preferred_max_length == 80
        assert stats.style() == {}
