"""
Code metrics.

Structure metrics (cyclomatic complexity and nesting depth per function and
per module) are computed on the unified tree. Formatting statistics such as
line lengths and spacing habits are computed on the raw text, since the
tree does not keep whitespace.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from codewhisper.parsing.nodes import NodeTag, UnifiedAstNode

CONTROL_TAGS = frozenset({NodeTag.LOOP, NodeTag.CONDITIONAL, NodeTag.TRY})

# Upper bounds of the low and medium complexity bands
LOW_COMPLEXITY = 5
MEDIUM_COMPLEXITY = 10

LINE_LIMITS = (80, 100, 120)


def decision_points(node: UnifiedAstNode) -> int:
    """Branches a single node adds to the control-flow graph."""
    attrs = node.attributes
    if node.tag is NodeTag.LOOP:
        return 1
    if node.tag is NodeTag.CONDITIONAL:
        kind = attrs.get("kind")
        if kind == "switch":
            return max(attrs.get("case_count", 0), 1)
        if kind == "match":
            return max(attrs.get("arm_count", 0) - 1, 1)
        return 1
    if node.tag is NodeTag.TRY:
        return 1 if attrs.get("has_catch") else 0
    return 0


def scope_nodes(owner: UnifiedAstNode) -> Iterator[tuple[UnifiedAstNode, int]]:
    """
    Nodes belonging to ``owner`` with the number of control nodes above them.

    Nested function definitions are not descended into; they are measured on
    their own.
    """
    stack = [(child, 0) for child in reversed(owner.children)]
    while stack:
        node, level = stack.pop()
        if node.tag is NodeTag.FUNCTION_DEF:
            continue
        yield node, level
        inner = level + 1 if node.tag in CONTROL_TAGS else level
        stack.extend((child, inner) for child in reversed(node.children))


def cyclomatic_complexity(owner: UnifiedAstNode) -> int:
    return 1 + sum(decision_points(node) for node, _ in scope_nodes(owner))


def nesting_depth(owner: UnifiedAstNode) -> int:
    """Deepest chain of loops, conditionals and try blocks."""
    return max((level + 1 for node, level in scope_nodes(owner) if node.tag in CONTROL_TAGS), default=0)


def complexity_band(value: int) -> str:
    if value <= LOW_COMPLEXITY:
        return "low"
    if value <= MEDIUM_COMPLEXITY:
        return "medium"
    return "high"


@dataclass
class FunctionMetrics:
    """Metrics of one function definition."""
    name: Optional[str]
    line: int
    cyclomatic_complexity: int
    nesting_depth: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "line": self.line,
            "cyclomatic_complexity": self.cyclomatic_complexity,
            "nesting_depth": self.nesting_depth,
        }


@dataclass
class StructureMetrics:
    """Module-level structure summary."""
    function_count: int = 0
    class_count: int = 0
    cyclomatic_complexity: int = 1
    max_nesting_depth: int = 0
    functions: list[FunctionMetrics] = field(default_factory=list)

    @property
    def average_complexity(self) -> float:
        if not self.functions:
            return 0.0
        return sum(f.cyclomatic_complexity for f in self.functions) / len(self.functions)

    def complexity_distribution(self) -> dict[str, int]:
        distribution = {"low": 0, "medium": 0, "high": 0}
        for function in self.functions:
            distribution[complexity_band(function.cyclomatic_complexity)] += 1
        return distribution

    def to_dict(self) -> dict[str, Any]:
        return {
            "function_count": self.function_count,
            "class_count": self.class_count,
            "cyclomatic_complexity": self.cyclomatic_complexity,
            "max_nesting_depth": self.max_nesting_depth,
            "average_complexity": round(self.average_complexity, 2),
            "complexity_distribution": self.complexity_distribution(),
            "functions": [f.to_dict() for f in self.functions],
        }


def function_metrics(node: UnifiedAstNode) -> FunctionMetrics:
    return FunctionMetrics(
        name=node.attributes.get("name"),
        line=node.span.start_line,
        cyclomatic_complexity=cyclomatic_complexity(node),
        nesting_depth=nesting_depth(node),
    )


def analyze_structure(tree: UnifiedAstNode) -> StructureMetrics:
    """
    Measure every function in a tree plus the module as a whole.

    The module's cyclomatic complexity counts every decision point in the
    file, function bodies included.
    """
    metrics = StructureMetrics()
    decisions = 0
    for node in tree.walk():
        decisions += decision_points(node)
        if node.tag is NodeTag.FUNCTION_DEF:
            metrics.function_count += 1
            measured = function_metrics(node)
            metrics.functions.append(measured)
            metrics.max_nesting_depth = max(metrics.max_nesting_depth, measured.nesting_depth)
        elif node.tag is NodeTag.CLASS_DEF:
            metrics.class_count += 1
    metrics.cyclomatic_complexity = 1 + decisions
    metrics.max_nesting_depth = max(metrics.max_nesting_depth, nesting_depth(tree))
    return metrics


# ---------------------------------------------------------------------- formatting

_SPACED_OPERATOR = re.compile(r"\s[+\-*/=<>!]+\s")
_TIGHT_OPERATOR = re.compile(r"[^\s][+\-*/=<>!]+[^\s]")
_SPACED_COMMA = re.compile(r",\s")
_TIGHT_COMMA = re.compile(r",[^\s]")
_SPACED_KEYWORD = re.compile(r"\b(?:if|for|while|switch|catch)\s+\(")
_TIGHT_KEYWORD = re.compile(r"\b(?:if|for|while|switch|catch)\(")
_PADDED_PARENTHESES = re.compile(r"\([ \t]|[ \t]\)")
_PADDED_BRACKETS = re.compile(r"\[[ \t]|[ \t]\]")
_PADDED_BRACES = re.compile(r"\{[ \t]|[ \t]\}")


def _prefers(spaced: re.Pattern[str], tight: re.Pattern[str], source: str) -> Optional[bool]:
    """True/False by majority, None when neither form occurs."""
    with_space = len(spaced.findall(source))
    without_space = len(tight.findall(source))
    if with_space == without_space == 0:
        return None
    return with_space > without_space


@dataclass
class FormattingStats:
    """Whitespace and line-length habits of one file."""
    line_count: int = 0
    average_line_length: float = 0.0
    median_line_length: int = 0
    preferred_max_length: int = 80
    indent_char: Optional[str] = None
    spaced_operators: Optional[bool] = None
    spaced_commas: Optional[bool] = None
    spaced_keywords: Optional[bool] = None
    padded_parentheses: bool = False
    padded_brackets: bool = False
    padded_braces: bool = False

    def line_limit(self) -> str:
        """Smallest common limit the file stays within, e.g. ``"100"``."""
        for limit in LINE_LIMITS:
            if self.preferred_max_length <= limit:
                return str(limit)
        return "long"

    def style(self) -> dict[str, str]:
        """File-level style keys merged into every candidate from the file."""
        style: dict[str, str] = {}
        if not self.line_count:
            return style
        style["line_length"] = self.line_limit()
        if self.indent_char:
            style["indent_char"] = self.indent_char
        if self.spaced_operators is not None:
            style["operator_spacing"] = "spaced" if self.spaced_operators else "tight"
        if self.spaced_commas is not None:
            style["comma_spacing"] = "spaced" if self.spaced_commas else "tight"
        return style

    def to_dict(self) -> dict[str, Any]:
        return {
            "line_count": self.line_count,
            "average_line_length": round(self.average_line_length, 2),
            "median_line_length": self.median_line_length,
            "preferred_max_length": self.preferred_max_length,
            "indent_char": self.indent_char,
            "spaced_operators": self.spaced_operators,
            "spaced_commas": self.spaced_commas,
            "spaced_keywords": self.spaced_keywords,
            "padded_parentheses": self.padded_parentheses,
            "padded_brackets": self.padded_brackets,
            "padded_braces": self.padded_braces,
        }


def analyze_formatting(source: str) -> FormattingStats:
    """
    Collect formatting statistics from source text.

    The preferred maximum line length is the 95th percentile of line
    lengths, so a handful of long lines does not move it.
    """
    lines = source.splitlines()
    stats = FormattingStats(line_count=len(lines))
    if not lines:
        return stats

    lengths = sorted(len(line) for line in lines)
    stats.average_line_length = sum(lengths) / len(lengths)
    stats.median_line_length = lengths[len(lengths) // 2]
    stats.preferred_max_length = lengths[min(len(lengths) * 95 // 100, len(lengths) - 1)]

    space_indents = sum(1 for line in lines if line.startswith(" ") and line.strip())
    tab_indents = sum(1 for line in lines if line.startswith("\t") and line.strip())
    if space_indents or tab_indents:
        stats.indent_char = "tabs" if tab_indents > space_indents else "spaces"

    stats.spaced_operators = _prefers(_SPACED_OPERATOR, _TIGHT_OPERATOR, source)
    stats.spaced_commas = _prefers(_SPACED_COMMA, _TIGHT_COMMA, source)
    stats.spaced_keywords = _prefers(_SPACED_KEYWORD, _TIGHT_KEYWORD, source)
    stats.padded_parentheses = bool(_PADDED_PARENTHESES.search(source))
    stats.padded_brackets = bool(_PADDED_BRACKETS.search(source))
    stats.padded_braces = bool(_PADDED_BRACES.search(source))
    return stats
