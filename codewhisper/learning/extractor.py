"""
Pattern extraction.

Walks a unified tree and emits a CandidatePattern for every pattern-worthy
node. The structural signature encodes only shape (tag, selected attributes,
nesting depth and two levels of child tags), so code that differs only in
identifiers and literals collapses to one signature.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from codewhisper.learning.metrics import FormattingStats, cyclomatic_complexity, nesting_depth
from codewhisper.parsing.nodes import NodeTag, SourceSpan, UnifiedAstNode

logger = logging.getLogger(__name__)


class PatternType(Enum):
    """Kinds of learned patterns."""
    FUNCTION_DEFINITION = "function_definition"
    CLASS_DEFINITION = "class_definition"
    VARIABLE_DECLARATION = "variable_declaration"
    LOOP_CONSTRUCT = "loop_construct"
    CONDITIONAL_STATEMENT = "conditional_statement"
    FUNCTION_CALL = "function_call"
    IMPORT_STATEMENT = "import_statement"
    EXCEPTION_HANDLING = "exception_handling"


PATTERN_TYPES = {
    NodeTag.FUNCTION_DEF: PatternType.FUNCTION_DEFINITION,
    NodeTag.CLASS_DEF: PatternType.CLASS_DEFINITION,
    NodeTag.VAR_DECL: PatternType.VARIABLE_DECLARATION,
    NodeTag.LOOP: PatternType.LOOP_CONSTRUCT,
    NodeTag.CONDITIONAL: PatternType.CONDITIONAL_STATEMENT,
    NodeTag.CALL: PatternType.FUNCTION_CALL,
    NodeTag.IMPORT: PatternType.IMPORT_STATEMENT,
    NodeTag.TRY: PatternType.EXCEPTION_HANDLING,
}

# Attributes that are part of a pattern's identity. Names never are.
SIGNATURE_ATTRIBUTES = ("param_count", "arg_count", "kind", "is_async", "has_else")

# Tags whose name attribute reflects the author's naming style.
NAMED_TAGS = frozenset({NodeTag.FUNCTION_DEF, NodeTag.CLASS_DEF, NodeTag.VAR_DECL})

_LOWERCASE = re.compile(r"^[a-z][a-z0-9]*$")
_CAMEL_CASE = re.compile(r"^[a-z][a-zA-Z0-9]*$")
_PASCAL_CASE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_SNAKE_CASE = re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)+$")
_UPPER_SNAKE = re.compile(r"^[A-Z][A-Z0-9]*(_[A-Z0-9]+)*$")


def classify_naming(name: Optional[str]) -> Optional[str]:
    """
    Classify an identifier's naming convention.

    Returns:
        camelCase, PascalCase, snake_case, UPPER_SNAKE, lowercase, mixed,
        or None when there is nothing to classify
    """
    if not name:
        return None
    core = name.lstrip("_#$@").rstrip("_")
    if core.startswith("r#"):
        core = core[2:]
    if not core:
        return None
    if _LOWERCASE.match(core):
        return "lowercase"
    if len(core) > 1 and _UPPER_SNAKE.match(core):
        return "UPPER_SNAKE"
    if _SNAKE_CASE.match(core):
        return "snake_case"
    if _CAMEL_CASE.match(core):
        return "camelCase"
    if _PASCAL_CASE.match(core):
        return "PascalCase"
    return "mixed"


# Leading verbs grouped by the role they give a function
VERB_GROUPS = {
    "getter": frozenset({"get", "fetch", "retrieve", "load", "find", "read", "query", "select", "obtain"}),
    "setter": frozenset({"set", "update", "modify", "change", "save", "write", "store", "put", "assign"}),
    "predicate": frozenset({"is", "has", "can", "should", "will", "must", "needs", "allows"}),
    "action": frozenset({
        "create", "make", "build", "add", "insert", "remove", "delete", "process", "handle",
        "execute", "run", "perform", "parse", "validate", "render", "init", "initialize",
        "compute", "calculate", "convert", "format", "send", "register", "reset", "clear",
    }),
}

_LEADING_WORD = re.compile(r"_*([A-Za-z][a-z0-9]*)")


def classify_verb(name: Optional[str]) -> Optional[str]:
    """Role implied by a function name's first word: getter, setter, predicate or action."""
    if not name:
        return None
    match = _LEADING_WORD.match(name)
    if match is None:
        return None
    word = match.group(1).lower()
    for group, verbs in VERB_GROUPS.items():
        if word in verbs:
            return group
    return None


@dataclass(frozen=True)
class CandidatePattern:
    """A pattern sighting produced by the extractor."""
    pattern_type: PatternType
    language: str
    signature: str
    source_file: str
    span: SourceSpan
    example: str
    style: dict[str, str] = field(default_factory=dict)
    metrics: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_type": self.pattern_type.value,
            "language": self.language,
            "signature": self.signature,
            "source_file": self.source_file,
            "span": self.span.to_dict(),
            "example": self.example,
            "style": dict(self.style),
            "metrics": dict(self.metrics),
        }


def subtree_depths(root: UnifiedAstNode) -> dict[int, int]:
    """Height of every subtree, keyed by id(node), computed without recursion."""
    depths: dict[int, int] = {}
    stack: list[tuple[UnifiedAstNode, bool]] = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            depths[id(node)] = 1 + max((depths[id(c)] for c in node.children), default=-1)
            continue
        stack.append((node, True))
        stack.extend((child, False) for child in node.children)
    return depths


def _canonical(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "none"
    return str(value)


def child_shape(node: UnifiedAstNode, levels: int = 2) -> str:
    """Child tags down to ``levels`` levels, e.g. ``Return(Call),Loop``."""
    parts = []
    for child in node.children:
        part = child.tag.value
        if levels > 1 and child.children:
            part += f"({child_shape(child, levels - 1)})"
        parts.append(part)
    return ",".join(parts)


def structural_signature(node: UnifiedAstNode, depth: int) -> str:
    """Canonical shape-only encoding of a node."""
    parts = [node.tag.value]
    for key in SIGNATURE_ATTRIBUTES:
        if key in node.attributes:
            parts.append(f"{key}={_canonical(node.attributes[key])}")
    parts.append(f"depth={depth}")
    parts.append(f"shape={child_shape(node)}")
    return "|".join(parts)


def style_attributes(node: UnifiedAstNode) -> dict[str, str]:
    """Style observations for a node: indentation, brace placement, naming."""
    style: dict[str, str] = {}
    nested = next((c for c in node.children if c.span.start_line > node.span.start_line), None)
    if nested is not None and nested.span.start_column > node.span.start_column:
        style["indentation"] = str(nested.span.start_column - node.span.start_column)
    brace_style = node.attributes.get("brace_style")
    if brace_style:
        style["brace_style"] = brace_style
    if node.tag in NAMED_TAGS:
        convention = classify_naming(node.attributes.get("name"))
        if convention:
            style["naming_convention"] = convention
    if node.tag is NodeTag.FUNCTION_DEF:
        style.update(signature_style(node))
    return style


def signature_style(node: UnifiedAstNode) -> dict[str, str]:
    """Naming and signature habits of a function definition."""
    attrs = node.attributes
    style: dict[str, str] = {}
    verb = classify_verb(attrs.get("name"))
    if verb:
        style["verb_prefix"] = verb
    if attrs.get("param_count") and "default_param_count" in attrs:
        style["default_params"] = "yes" if attrs["default_param_count"] else "no"
    if "has_return_type" in attrs and attrs.get("kind") != "signature":
        style["return_annotation"] = "yes" if attrs["has_return_type"] else "no"
    return style


def node_metrics(node: UnifiedAstNode) -> dict[str, int]:
    if node.tag is not NodeTag.FUNCTION_DEF:
        return {}
    return {
        "cyclomatic_complexity": cyclomatic_complexity(node),
        "nesting_depth": nesting_depth(node),
    }


def example_label(node: UnifiedAstNode) -> str:
    """Short human readable label for a node."""
    attrs = node.attributes
    name = attrs.get("name")
    kind = attrs.get("kind") or node.tag.value
    if node.tag is NodeTag.FUNCTION_DEF:
        prefix = "async " if attrs.get("is_async") else ""
        return f"{prefix}{kind} {name or '<anonymous>'}({attrs.get('param_count', 0)} params)"
    if node.tag is NodeTag.CALL:
        return f"{attrs.get('callee', '<expression>')}({attrs.get('arg_count', 0)} args)"
    if node.tag is NodeTag.IMPORT:
        return f"import {name}" if name else "import"
    if node.tag is NodeTag.TRY:
        return "try/catch/finally" if attrs.get("has_finally") else "try/catch"
    if node.tag is NodeTag.CONDITIONAL and attrs.get("has_else"):
        return f"{kind}/else"
    if name:
        return f"{kind} {name}"
    return str(kind)


class CandidateSequence:
    """
    Lazy, finite and restartable sequence of candidates.

    Every iteration walks the tree again in pre-order, so iterating twice
    yields the same candidates. File-level formatting style, when given, is
    merged under each candidate's own style.
    """

    def __init__(
        self,
        tree: UnifiedAstNode,
        language: str,
        source_file: str,
        file_style: Optional[dict[str, str]] = None,
    ):
        self.tree = tree
        self.language = language
        self.source_file = source_file
        self.file_style = file_style or {}

    def __iter__(self) -> Iterator[CandidatePattern]:
        depths = subtree_depths(self.tree)
        for node in self.tree.walk():
            pattern_type = PATTERN_TYPES.get(node.tag)
            if pattern_type is None:
                continue
            yield CandidatePattern(
                pattern_type=pattern_type,
                language=self.language,
                signature=structural_signature(node, depths[id(node)]),
                source_file=self.source_file,
                span=node.span,
                example=example_label(node),
                style={**self.file_style, **style_attributes(node)},
                metrics=node_metrics(node),
            )


class PatternExtractor:
    """Turns unified trees into candidate patterns."""

    def extract(
        self,
        tree: UnifiedAstNode,
        language: str,
        source_file: Optional[str] = None,
        formatting: Optional[FormattingStats] = None,
    ) -> CandidateSequence:
        """
        Extract candidate patterns from a tree.

        Args:
            tree: Root of a unified tree
            language: Canonical language name
            source_file: File reference; defaults to the tree's span file
            formatting: Formatting statistics of the file the tree came from

        Returns:
            Restartable sequence of CandidatePattern in pre-order
        """
        file_style = formatting.style() if formatting is not None else None
        return CandidateSequence(tree, language, source_file or tree.span.file, file_style)
