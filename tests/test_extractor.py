"""
Tests for pattern extraction.

Run with: pytest tests/
"""

import pytest

from codewhisper.learning import PatternExtractor, PatternType, classify_naming
from codewhisper.learning.extractor import classify_verb, structural_signature, subtree_depths
from codewhisper.learning.metrics import analyze_formatting
from codewhisper.parsing import EcmaScriptFrontEnd, PythonFrontEnd


def extract(source: str, front_end=None, language: str = "javascript", source_file: str = "a.js"):
    front_end = front_end or EcmaScriptFrontEnd()
    result = front_end.parse(source, source_file)
    return PatternExtractor().extract(result.tree, language, source_file)


class TestClassifyNaming:
    """Tests for naming convention classification."""

    @pytest.mark.parametrize("name, expected", [
        ("add", "lowercase"),
        ("addNumbers", "camelCase"),
        ("AddNumbers", "PascalCase"),
        ("add_numbers", "snake_case"),
        ("MAX_SIZE", "UPPER_SNAKE"),
        ("_private_name", "snake_case"),
        ("Mixed_Case", "mixed"),
    ])
    def test_conventions(self, name: str, expected: str) -> None:
        """Should classify common conventions."""
        assert classify_naming(name) == expected

    def test_nothing_to_classify(self) -> None:
        """Should return None for empty or underscore-only names."""
        assert classify_naming(None) is None
        assert classify_naming("__") is None


class TestClassifyVerb:
    """Tests for leading-verb classification of function names."""

    @pytest.mark.parametrize("name, expected", [
        ("getUser", "getter"),
        ("_load_config", "getter"),
        ("setName", "setter"),
        ("is_valid", "predicate"),
        ("HasChildren", "predicate"),
        ("handleClick", "action"),
        ("issue", None),
        (None, None),
    ])
    def test_groups(self, name: str, expected: str) -> None:
        assert classify_verb(name) == expected


class TestPatternExtractor:
    """Tests for PatternExtractor."""

    def test_function_signature(self) -> None:
        """Should encode shape and selected attributes but not names."""
        candidates = list(extract("function add(a,b){return a+b;}"))

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.pattern_type is PatternType.FUNCTION_DEFINITION
        assert candidate.signature == (
            "FunctionDef|param_count=2|kind=function|is_async=false|depth=1|shape=Return"
        )
        assert "add" not in candidate.signature
        assert candidate.style["naming_convention"] == "lowercase"
        assert candidate.style["brace_style"] == "same_line"
        assert candidate.example == "function add(2 params)"
        assert candidate.source_file == "a.js"

    def test_names_do_not_change_signature(self) -> None:
        """Should collapse same-shape code with different identifiers."""
        first = list(extract("function add(a,b){return a+b;}"))
        second = list(extract("function multiplyValues(x,y){return x*y;}"))

        assert first[0].signature == second[0].signature
        assert second[0].style["naming_convention"] == "camelCase"

    def test_pre_order(self) -> None:
        """Should yield candidates in pre-order."""
        source = "function run(items) {\n  for (const item of items) {\n    handle(item);\n  }\n}\n"
        types = [c.pattern_type for c in extract(source)]

        assert types == [
            PatternType.FUNCTION_DEFINITION,
            PatternType.LOOP_CONSTRUCT,
            PatternType.FUNCTION_CALL,
        ]

    def test_indentation_style(self) -> None:
        """Should measure indentation from nested spans."""
        source = "def f():\n    return g()\n"
        candidates = list(extract(source, PythonFrontEnd(), "python", "f.py"))

        func = candidates[0]
        assert func.style["indentation"] == "4"
        assert func.style["naming_convention"] == "lowercase"

    def test_restartable_and_deterministic(self) -> None:
        """Should yield identical candidates on every iteration."""
        source = "import os\n\nclass A:\n    def run(self):\n        for x in os.listdir('.'):\n            print(x)\n"
        sequence = extract(source, PythonFrontEnd(), "python", "a.py")

        first_pass = list(sequence)
        second_pass = list(sequence)
        again = list(extract(source, PythonFrontEnd(), "python", "a.py"))

        assert first_pass == second_pass == again
        assert len(first_pass) >= 5

    def test_depth_is_part_of_signature(self) -> None:
        """Should distinguish nesting depth."""
        shallow = list(extract("function f(){return 1;}"))[0]
        deep = list(extract("function f(){if (x) { return 1; }}"))[0]

        assert shallow.signature != deep.signature

    def test_subtree_depths(self) -> None:
        """Should record the height of every subtree, leaves at 0."""
        result = PythonFrontEnd().parse("def f(x):\n    if x:\n        return g(x)\n")
        depths = subtree_depths(result.tree)

        heights = {node.tag.value: depths[id(node)] for node in result.tree.walk()}
        assert heights == {"Module": 4, "FunctionDef": 3, "Conditional": 2, "Return": 1, "Call": 0}
        func = result.tree.children[0]
        assert structural_signature(func, depths[id(func)]).startswith("FunctionDef|param_count=1")

    def test_signature_style(self) -> None:
        """Should record verb prefix, parameter defaults and return annotations."""
        source = "def get_user(user_id, cache=None) -> dict:\n    return lookup(user_id)\n"
        func = list(extract(source, PythonFrontEnd(), "python", "f.py"))[0]

        assert func.style["verb_prefix"] == "getter"
        assert func.style["default_params"] == "yes"
        assert func.style["return_annotation"] == "yes"

    def test_untyped_function_style(self) -> None:
        func = list(extract("function add(a,b){return a+b;}"))[0]

        assert func.style["verb_prefix"] == "action"
        assert func.style["default_params"] == "no"
        assert "return_annotation" not in func.style

    def test_function_metrics(self) -> None:
        """Should attach complexity metrics to function candidates only."""
        source = "function f(x){\n  if (x) { for (;;) { g(); } }\n}\n"
        candidates = list(extract(source))

        assert candidates[0].metrics == {"cyclomatic_complexity": 3, "nesting_depth": 2}
        assert all(c.metrics == {} for c in candidates[1:])
        assert candidates[0].to_dict()["metrics"]["nesting_depth"] == 2

    def test_file_formatting_is_merged(self) -> None:
        """Should add file-level formatting keys without overriding node style."""
        source = "function add(a, b) {\n  return a + b;\n}\n"
        result = EcmaScriptFrontEnd().parse(source, "a.js")
        candidates = list(PatternExtractor().extract(
            result.tree, "javascript", "a.js", analyze_formatting(source),
        ))

        style = candidates[0].style
        assert style["operator_spacing"] == "spaced"
        assert style["comma_spacing"] == "spaced"
        assert style["line_length"] == "80"
        assert style["brace_style"] == "same_line"
