"""
Generic token-stream front-end.

Used for allowed languages that have no dedicated front-end. Statements are
split on ``;``, line breaks and braces, and tagged by their leading keyword.
Brace nesting becomes tree nesting. This front-end never fails: unbalanced
braces are reported as diagnostics and closed implicitly.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from codewhisper.parsing.base import LanguageFrontEnd, ParseBudget
from codewhisper.parsing.nodes import Diagnostic, NodeTag, ParseResult, SourceSpan, UnifiedAstNode
from codewhisper.parsing.tokenizer import Lexer, LexerSpec, Token, TokenKind

logger = logging.getLogger(__name__)

KEYWORD_TAGS = {
    "func": NodeTag.FUNCTION_DEF,
    "function": NodeTag.FUNCTION_DEF,
    "def": NodeTag.FUNCTION_DEF,
    "fn": NodeTag.FUNCTION_DEF,
    "fun": NodeTag.FUNCTION_DEF,
    "sub": NodeTag.FUNCTION_DEF,
    "proc": NodeTag.FUNCTION_DEF,
    "class": NodeTag.CLASS_DEF,
    "struct": NodeTag.CLASS_DEF,
    "interface": NodeTag.CLASS_DEF,
    "for": NodeTag.LOOP,
    "while": NodeTag.LOOP,
    "foreach": NodeTag.LOOP,
    "loop": NodeTag.LOOP,
    "repeat": NodeTag.LOOP,
    "if": NodeTag.CONDITIONAL,
    "switch": NodeTag.CONDITIONAL,
    "case": NodeTag.CONDITIONAL,
    "match": NodeTag.CONDITIONAL,
    "unless": NodeTag.CONDITIONAL,
    "import": NodeTag.IMPORT,
    "include": NodeTag.IMPORT,
    "use": NodeTag.IMPORT,
    "require": NodeTag.IMPORT,
    "using": NodeTag.IMPORT,
    "var": NodeTag.VAR_DECL,
    "let": NodeTag.VAR_DECL,
    "const": NodeTag.VAR_DECL,
    "val": NodeTag.VAR_DECL,
    "my": NodeTag.VAR_DECL,
    "local": NodeTag.VAR_DECL,
    "return": NodeTag.RETURN,
    "try": NodeTag.TRY,
}

# Leading words that do not decide what a statement is.
MODIFIERS = frozenset({
    "public", "private", "protected", "static", "final", "abstract", "export",
    "pub", "async", "override", "virtual", "inline", "extern", "open",
    "internal", "sealed", "readonly", "unsafe",
})

CLAUSE_KEYWORDS = frozenset({"else", "elif", "elsif", "catch", "except", "finally"})

GENERIC_LEXER = LexerSpec(
    keywords=frozenset(KEYWORD_TAGS) | MODIFIERS | CLAUSE_KEYWORDS,
    line_comments=("//", "#"),
    identifier_pattern=r"[A-Za-z_$@][\w$]*",
)


class _Statement:
    """Tokens of one statement plus the block that follows it, if any."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.children: list[UnifiedAstNode] = []
        self.brace_style: Optional[str] = None
        self.end: Optional[Token] = None


@dataclass
class _Frame:
    """An open brace and where its contents go once it closes."""
    open_brace: Token
    owner: Optional[_Statement]
    destination: list[UnifiedAstNode]
    target: Optional[UnifiedAstNode] = None
    body: list[UnifiedAstNode] = field(default_factory=list)


class GenericFrontEnd(LanguageFrontEnd):
    """Keyword-heuristic front-end for any language."""

    def __init__(self) -> None:
        self._lexer = Lexer(GENERIC_LEXER)

    @property
    def language(self) -> str:
        return "generic"

    def tokenize(self, source: str, budget: Optional[ParseBudget] = None) -> list[Token]:
        return self._lexer.tokenize(source, budget.check if budget else None)

    def build_tree(
        self,
        source: str,
        source_file: str,
        budget: ParseBudget,
        language: str,
    ) -> ParseResult:
        tokens = self.tokenize(source, budget)
        diagnostics: list[Diagnostic] = []
        root: list[UnifiedAstNode] = []
        frames: list[_Frame] = []
        current: list[Token] = []
        # Node an else/catch/finally clause would attach to
        last_closed: Optional[UnifiedAstNode] = None
        clause_target: Optional[UnifiedAstNode] = None

        def destination() -> list[UnifiedAstNode]:
            if clause_target is not None:
                return clause_target.children
            return frames[-1].body if frames else root

        def flush() -> None:
            nonlocal current, last_closed, clause_target
            if current:
                destination().append(self._to_node(_Statement(current), source_file))
                current = []
                last_closed = None
                clause_target = None

        for index, token in enumerate(tokens):
            if index % 256 == 0:
                budget.check()
            punct = token.value if token.kind is TokenKind.PUNCT else None

            if current and token.line > current[-1].end_line and not self._continues(current[-1], token):
                flush()

            if punct == ";":
                flush()
            elif punct == "{":
                owner = None
                # `catch (e) {` keeps the clause header out of the tree
                if current and not (clause_target is not None and current[0].value == "("):
                    owner = _Statement(current)
                    prev = current[-1]
                    owner.brace_style = "same_line" if prev.end_line == token.line else "next_line"
                frames.append(_Frame(token, owner, destination(), target=clause_target))
                current = []
                last_closed = None
                clause_target = None
            elif punct == "}":
                flush()
                if not frames:
                    diagnostic = Diagnostic("Unexpected '}'", token.line, token.column)
                    diagnostics.append(diagnostic)
                    root.append(self.error_node(source_file, diagnostic, token.end_line, token.end_column))
                    continue
                last_closed = self._close(frames.pop(), token, source_file)
            elif not current and last_closed is not None and token.value in CLAUSE_KEYWORDS:
                self._mark_clause(last_closed, token.value)
                clause_target = last_closed
                last_closed = None
            else:
                current.append(token)

        flush()
        while frames:
            frame = frames.pop()
            diagnostics.append(Diagnostic("Unterminated block", frame.open_brace.line, frame.open_brace.column))
            self._close(frame, tokens[-1], source_file)

        tree = self.module_node(source, source_file, root)
        return ParseResult(tree=tree, language=language, diagnostics=diagnostics)

    def parse(
        self,
        source: str,
        source_file: str = "<memory>",
        budget: Optional[ParseBudget] = None,
        language: Optional[str] = None,
    ) -> ParseResult:
        """Never raises ParseError: every input yields a tree."""
        budget = budget or ParseBudget(float("inf"))
        budget.check()
        return self.build_tree(source, source_file, budget, language or self.language)

    def _close(self, frame: _Frame, close: Token, source_file: str) -> Optional[UnifiedAstNode]:
        """Emit the node for a closed block; returns the node clauses attach to."""
        if frame.owner is not None:
            frame.owner.children = frame.body
            frame.owner.end = close
            node = self._to_node(frame.owner, source_file)
            frame.destination.append(node)
            return node
        if frame.target is not None:
            # Body of an else/catch/finally clause
            frame.destination.extend(frame.body)
            return frame.target
        span = SourceSpan(source_file, frame.open_brace.line, frame.open_brace.column,
                          close.end_line, close.end_column)
        node = UnifiedAstNode(NodeTag.BLOCK, span, {}, frame.body)
        frame.destination.append(node)
        return None

    @staticmethod
    def _continues(prev: Token, token: Token) -> bool:
        """A line break inside an expression (open operator or leading dot)."""
        if prev.kind is TokenKind.OPERATOR and prev.value not in ("++", "--"):
            return True
        return token.value in (".", "?.", ")", "]", ",") or prev.value in ("(", "[", ",")

    @staticmethod
    def _mark_clause(node: UnifiedAstNode, keyword: str) -> None:
        if keyword in ("else", "elif", "elsif"):
            if node.tag in (NodeTag.CONDITIONAL, NodeTag.LOOP):
                node.attributes["has_else"] = True
        elif keyword in ("catch", "except"):
            node.attributes["has_catch"] = True
        elif keyword == "finally":
            node.attributes["has_finally"] = True

    def _to_node(self, statement: _Statement, source_file: str) -> UnifiedAstNode:
        tokens = statement.tokens
        first = tokens[0]
        last = statement.end or tokens[-1]
        span = SourceSpan(source_file, first.line, first.column, last.end_line, last.end_column)

        words = [t for t in tokens if t.kind in (TokenKind.IDENT, TokenKind.KEYWORD)]
        lead = next((t for t in words if t.value not in MODIFIERS), None)
        attributes: dict = {}
        if statement.brace_style:
            attributes["brace_style"] = statement.brace_style

        tag = NodeTag.STATEMENT
        if lead is not None and lead.value in KEYWORD_TAGS:
            tag = KEYWORD_TAGS[lead.value]
            attributes["kind"] = lead.value
            name = self._name_after(tokens, lead)
            if tag in (NodeTag.FUNCTION_DEF, NodeTag.CLASS_DEF, NodeTag.VAR_DECL, NodeTag.IMPORT):
                attributes["name"] = name
            if tag is NodeTag.FUNCTION_DEF:
                attributes["param_count"] = self._count_params(tokens)
                attributes["is_async"] = any(t.value == "async" for t in tokens)
            elif tag is NodeTag.CONDITIONAL:
                attributes["has_else"] = False
            elif tag is NodeTag.TRY:
                attributes["has_catch"] = False
                attributes["has_finally"] = False
            elif tag is NodeTag.RETURN:
                attributes = {"has_value": len(tokens) > 1}
        elif statement.children and tokens[-1].value == ")" and self._paren_index(tokens) > 0:
            # C-family definition without a keyword: `int main(void) {`
            tag = NodeTag.FUNCTION_DEF
            paren = self._paren_index(tokens)
            attributes["kind"] = "function"
            attributes["name"] = tokens[paren - 1].value
            attributes["param_count"] = self._count_params(tokens)
            attributes["is_async"] = False
        elif len(tokens) >= 2 and tokens[0].kind is TokenKind.IDENT and tokens[1].value == "(":
            tag = NodeTag.CALL
            attributes["callee"] = tokens[0].value
            attributes["arg_count"] = self._count_params(tokens)
        elif any(t.kind is TokenKind.OPERATOR and t.value == "=" for t in tokens):
            tag = NodeTag.ASSIGNMENT
            attributes["operator"] = "="

        if tag is NodeTag.STATEMENT and statement.children:
            tag = NodeTag.BLOCK
        return UnifiedAstNode(tag, span, attributes, statement.children)

    @staticmethod
    def _name_after(tokens: list[Token], lead: Token) -> Optional[str]:
        index = tokens.index(lead)
        for token in tokens[index + 1:]:
            if token.kind is TokenKind.IDENT:
                return token.value
            if token.kind is not TokenKind.KEYWORD:
                break
        return None

    @staticmethod
    def _paren_index(tokens: list[Token]) -> int:
        return next((i for i, t in enumerate(tokens) if t.value == "(" and t.kind is TokenKind.PUNCT), -1)

    @staticmethod
    def _count_params(tokens: list[Token]) -> int:
        """Count comma-separated items in the first parenthesized group."""
        depth = 0
        count = 0
        pending = False
        for token in tokens:
            if token.value == "(":
                depth += 1
                if depth == 1:
                    continue
            elif token.value == ")":
                depth -= 1
                if depth == 0:
                    break
            if depth == 1 and token.value == ",":
                count += 1 if pending else 0
                pending = False
            elif depth >= 1:
                pending = True
        return count + (1 if pending else 0)
