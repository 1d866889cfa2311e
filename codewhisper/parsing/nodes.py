"""
Unified AST shared by every language front-end.

Front-ends translate their grammar into this vocabulary so that pattern
extraction never needs to know which language it is looking at.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator


class NodeTag(Enum):
    """Abstract node kinds shared across languages."""
    MODULE = "Module"
    FUNCTION_DEF = "FunctionDef"
    CLASS_DEF = "ClassDef"
    VAR_DECL = "VarDecl"
    LOOP = "Loop"
    CONDITIONAL = "Conditional"
    CALL = "Call"
    IMPORT = "Import"
    RETURN = "Return"
    TRY = "Try"
    BLOCK = "Block"
    ASSIGNMENT = "Assignment"
    EXPRESSION = "Expression"
    STATEMENT = "Statement"
    ERROR = "Error"


@dataclass(frozen=True)
class SourceSpan:
    """Location of a node in its source file (1-based lines, 0-based columns)."""
    file: str
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "start_line": self.start_line,
            "start_column": self.start_column,
            "end_line": self.end_line,
            "end_column": self.end_column,
        }


@dataclass
class UnifiedAstNode:
    """A node of the language-independent tree."""
    tag: NodeTag
    span: SourceSpan
    attributes: dict[str, Any] = field(default_factory=dict)
    children: list["UnifiedAstNode"] = field(default_factory=list)

    def walk(self) -> Iterator["UnifiedAstNode"]:
        """Yield this node and all descendants in pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag.value,
            "attributes": dict(self.attributes),
            "span": self.span.to_dict(),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class Diagnostic:
    """A recovered syntax problem."""
    message: str
    line: int
    column: int

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "line": self.line, "column": self.column}


@dataclass
class ParseResult:
    """Output of a front-end: the (possibly partial) tree plus diagnostics."""
    tree: UnifiedAstNode
    language: str
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.diagnostics)
