"""
Front-ends backed by tree-sitter grammars.

A TreeSitterFrontEnd parses with a grammar from tree_sitter_language_pack and
hands the concrete syntax tree to a TreeTranslator, which maps node types onto
the unified vocabulary. Node types without a handler are transparent: their
named children are lifted into the parent, so an expression only contributes
the calls and functions nested inside it.

ERROR and MISSING nodes become a Diagnostic plus an Error node. Whatever
tree-sitter recovered inside an ERROR node is lifted next to it, so one bad
region never hides the definitions that follow it.
"""

import logging
import threading
from typing import Any, Optional

from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_language

from codewhisper.parsing.base import LanguageFrontEnd, ParseBudget
from codewhisper.parsing.nodes import Diagnostic, NodeTag, ParseResult, SourceSpan, UnifiedAstNode

logger = logging.getLogger(__name__)

COMMENT_TYPES = frozenset({"comment", "line_comment", "block_comment", "html_comment"})


class TreeTranslator:
    """Translates one tree-sitter tree into unified nodes."""

    #: tree-sitter node type -> name of the method that translates it
    handlers: dict[str, str] = {}

    #: Node types that are bodies; they are spliced into their owner
    block_types: frozenset[str] = frozenset()

    def __init__(self, source: bytes, source_file: str, budget: ParseBudget, language: str):
        self.source = source
        self.file = source_file
        self.budget = budget
        self.language = language
        self.diagnostics: list[Diagnostic] = []
        self._reported: set[tuple[int, int]] = set()

    # ------------------------------------------------------------------ text and positions

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def position(self, byte_offset: int, point: Any) -> tuple[int, int]:
        """1-based line and 0-based character column of a byte offset."""
        row, byte_column = point[0], point[1]
        line_start = byte_offset - byte_column
        column = len(self.source[line_start:byte_offset].decode("utf-8", errors="replace"))
        return row + 1, column

    def span(self, node: Node) -> SourceSpan:
        line, column = self.position(node.start_byte, node.start_point)
        end_line, end_column = self.position(node.end_byte, node.end_point)
        return SourceSpan(self.file, line, column, end_line, end_column)

    def node(
        self,
        tag: NodeTag,
        ts_node: Node,
        attributes: Optional[dict[str, Any]] = None,
        children: Optional[list[UnifiedAstNode]] = None,
    ) -> UnifiedAstNode:
        return UnifiedAstNode(tag, self.span(ts_node), attributes or {}, children or [])

    # ------------------------------------------------------------------ traversal

    def translate(self, *nodes: Optional[Node]) -> list[UnifiedAstNode]:
        """
        Translate nodes in source order.

        Transparent nodes are walked with an explicit stack, so long operator
        chains do not deepen the Python call stack.
        """
        results: list[UnifiedAstNode] = []
        stack = [node for node in reversed(nodes) if node is not None]
        while stack:
            current = stack.pop()
            if current.type != "ERROR" and not current.is_named and not current.is_missing:
                continue
            self.budget.check()
            if current.is_missing:
                results.append(self.missing(current))
                continue
            if current.type == "ERROR":
                results.append(self.error(current))
                stack.extend(reversed(current.children))
                continue
            handler = self.handlers.get(current.type)
            if handler is not None:
                results.extend(getattr(self, handler)(current))
                continue
            stack.extend(reversed(current.children))
        return results

    def flatten(self, node: Node) -> list[UnifiedAstNode]:
        """Translate a node's children, splicing block bodies in place."""
        results: list[UnifiedAstNode] = []
        for child in node.children:
            if child.type in self.block_types:
                results.extend(self.translate(*child.children))
            else:
                results.extend(self.translate(child))
        return results

    def body(self, node: Optional[Node]) -> list[UnifiedAstNode]:
        if node is None:
            return []
        if node.type in self.block_types:
            return self.translate(*node.children)
        return self.translate(node)

    @staticmethod
    def named(node: Optional[Node]) -> list[Node]:
        """Named children without comments."""
        if node is None:
            return []
        return [child for child in node.named_children if child.type not in COMMENT_TYPES]

    @staticmethod
    def has_token(node: Optional[Node], *types: str) -> bool:
        """Whether an anonymous child token of one of ``types`` is present."""
        if node is None:
            return False
        return any(not child.is_named and child.type in types for child in node.children)

    @staticmethod
    def brace_style(block: Optional[Node]) -> Optional[str]:
        """same_line when the opening brace shares a line with what precedes it."""
        if block is None:
            return None
        before = block.prev_sibling
        if before is None:
            return None
        return "same_line" if before.end_point[0] == block.start_point[0] else "next_line"

    # ------------------------------------------------------------------ errors

    def error_message(self, node: Node) -> str:
        snippet = self.text(node).strip().split("\n", 1)[0][:24]
        return f"Unexpected '{snippet}'" if snippet else "Syntax error"

    def error(self, node: Node) -> UnifiedAstNode:
        message = self.error_message(node)
        self.report(node, message)
        return self.node(NodeTag.ERROR, node, {"message": message})

    def missing(self, node: Node) -> UnifiedAstNode:
        message = f"Missing '{node.type}'"
        self.report(node, message)
        return self.node(NodeTag.ERROR, node, {"message": message})

    def report(self, node: Node, message: str) -> None:
        key = (node.start_byte, node.end_byte)
        if key in self._reported:
            return
        self._reported.add(key)
        line, column = self.position(node.start_byte, node.start_point)
        self.diagnostics.append(Diagnostic(message, line, column))

    def report_remaining(self, root: Node) -> None:
        """Diagnose ERROR and MISSING nodes inside subtrees no handler descended into."""
        stack = [root]
        while stack:
            node = stack.pop()
            if node.is_missing:
                self.report(node, f"Missing '{node.type}'")
            elif node.type == "ERROR":
                self.report(node, self.error_message(node))
            stack.extend(child for child in node.children if child.has_error or child.is_missing)


class TreeSitterFrontEnd(LanguageFrontEnd):
    """
    Base class for front-ends built on a tree-sitter grammar.

    Subclasses set ``translator`` and implement ``grammar_for``.
    """

    translator: type[TreeTranslator] = TreeTranslator

    def __init__(self) -> None:
        # tree-sitter parsers must not be shared between threads
        self._local = threading.local()

    def grammar_for(self, language: str, source_file: str) -> str:
        """Name of the tree_sitter_language_pack grammar for a parse."""
        return self.language

    def parser(self, grammar: str) -> Parser:
        parsers = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = self._local.parsers = {}
        parser = parsers.get(grammar)
        if parser is None:
            parser = Parser(get_language(grammar))
            parsers[grammar] = parser
            logger.debug(f"Loaded {grammar} grammar")
        return parser

    def tokenize(self, source: str, budget: Optional[ParseBudget] = None) -> list[tuple[str, str]]:
        """Leaf tokens of the concrete syntax tree as (type, text) pairs."""
        data = source.encode("utf-8")
        tree = self.parser(self.grammar_for(self.language, "")).parse(data)
        tokens: list[tuple[str, str]] = []
        stack = [tree.root_node]
        while stack:
            node = stack.pop()
            if budget is not None and len(tokens) % 256 == 0:
                budget.check()
            if node.child_count == 0:
                if node.end_byte > node.start_byte:
                    tokens.append((node.type, data[node.start_byte:node.end_byte].decode("utf-8", errors="replace")))
                continue
            stack.extend(reversed(node.children))
        return tokens

    def build_tree(
        self,
        source: str,
        source_file: str,
        budget: ParseBudget,
        language: str,
    ) -> ParseResult:
        data = source.encode("utf-8")
        tree = self.parser(self.grammar_for(language, source_file)).parse(data)
        budget.check()

        translator = self.translator(data, source_file, budget, language)
        root = tree.root_node
        if root.type == "ERROR":
            children = translator.translate(root)
        else:
            children = translator.translate(*root.children)
        if root.has_error:
            translator.report_remaining(root)
        diagnostics = sorted(translator.diagnostics, key=lambda d: (d.line, d.column))
        if diagnostics:
            logger.debug(f"{len(diagnostics)} syntax errors in {source_file}, first at line {diagnostics[0].line}")
        tree_node = self.module_node(source, source_file, children)
        return ParseResult(tree=tree_node, language=language, diagnostics=diagnostics)
