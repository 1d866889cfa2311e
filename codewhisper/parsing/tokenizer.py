"""
Regex driven lexer for the generic front-end.

A LexerSpec describes the surface syntax (keywords, comment markers,
identifier shape). Comments and whitespace are dropped; every other
character ends up in some token, unknown characters included, so the
front-end can report them as diagnostics instead of failing.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional


class TokenKind(Enum):
    """Lexical categories."""
    IDENT = "ident"
    KEYWORD = "keyword"
    NUMBER = "number"
    STRING = "string"
    OPERATOR = "operator"
    PUNCT = "punct"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Token:
    """A lexical token with its 1-based line and 0-based column."""
    kind: TokenKind
    value: str
    line: int
    column: int
    end_line: int
    end_column: int


# Longest first so that "===" wins over "==" and "=".
OPERATORS = [
    ">>>=", "...", "===", "!==", "**=", "<<=", ">>=", "&&=", "||=", "??=",
    "=>", "==", "!=", "<=", ">=", "&&", "||", "??", "?.", "++", "--",
    "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "::", "->", "..",
    "**", "<<",
    "+", "-", "*", "/", "%", "=", "<", ">", "!", "&", "|", "^", "~", "?",
    ":", ".", "@", "#", "$", "\\",
]

PUNCTUATION = "(){}[];,"


@dataclass
class LexerSpec:
    """Surface syntax of a language family."""
    keywords: frozenset[str] = frozenset()
    line_comments: tuple[str, ...] = ("//",)
    block_comments: bool = True
    identifier_pattern: str = r"[A-Za-z_$][\w$]*"
    string_quotes: tuple[str, ...] = ('"', "'")
    extra_patterns: dict[str, str] = field(default_factory=dict)


class Lexer:
    """Tokenizes source text according to a LexerSpec."""

    def __init__(self, spec: LexerSpec):
        self.spec = spec
        self._pattern = self._compile(spec)

    def _compile(self, spec: LexerSpec) -> re.Pattern[str]:
        parts: list[tuple[str, str]] = [
            ("newline", r"\n"),
            ("space", r"[ \t\r\f\v]+"),
        ]
        if spec.block_comments:
            parts.append(("block_comment", r"/\*.*?\*/"))
        for marker in spec.line_comments:
            parts.append(("line_comment", re.escape(marker) + r"[^\n]*"))
        for quote in spec.string_quotes:
            q = re.escape(quote)
            parts.append(("string", rf"{q}(?:\\.|[^{q}\\\n])*{q}"))
        for name, pattern in spec.extra_patterns.items():
            parts.append((name, pattern))
        parts.append(("number", r"\d[\w]*(?:\.\d[\w]*)?"))
        parts.append(("ident", spec.identifier_pattern))
        parts.append(("operator", "|".join(re.escape(op) for op in OPERATORS)))
        parts.append(("punct", "[" + re.escape(PUNCTUATION) + "]"))
        parts.append(("unknown", r"."))

        # Group names must be unique, so number repeated kinds.
        named = []
        for index, (name, pattern) in enumerate(parts):
            named.append(f"(?P<{name}__{index}>{pattern})")
        return re.compile("|".join(named), re.DOTALL)

    def tokenize(self, source: str, check: Optional[Callable[[], None]] = None) -> list[Token]:
        """
        Split source into tokens.

        Args:
            source: Source text
            check: Optional callback invoked periodically (budget enforcement)

        Returns:
            Significant tokens in source order
        """
        tokens: list[Token] = []
        pos = 0
        line = 1
        line_start = 0
        length = len(source)

        while pos < length:
            if check is not None and len(tokens) % 256 == 0:
                check()

            match = self._pattern.match(source, pos)
            # The trailing "." alternative always matches one character.
            assert match is not None
            kind_name = match.lastgroup.split("__")[0]
            text = match.group(0)
            start_line, start_col = line, pos - line_start

            newlines = text.count("\n")
            if newlines:
                line += newlines
                line_start = pos + text.rfind("\n") + 1
            end_col = match.end() - line_start
            pos = match.end()

            if kind_name in ("newline", "space", "line_comment", "block_comment"):
                continue

            if kind_name == "ident":
                kind = TokenKind.KEYWORD if text in self.spec.keywords else TokenKind.IDENT
            elif kind_name == "number":
                kind = TokenKind.NUMBER
            elif kind_name == "string":
                kind = TokenKind.STRING
            elif kind_name == "operator":
                kind = TokenKind.OPERATOR
            elif kind_name == "punct":
                kind = TokenKind.PUNCT
            elif kind_name == "unknown":
                kind = TokenKind.UNKNOWN
            else:
                kind = TokenKind.IDENT

            tokens.append(Token(kind, text, start_line, start_col, line, end_col))

        return tokens
