"""
Base class for all language front-ends.

Every front-end must inherit from LanguageFrontEnd and implement:
- language: str - canonical language name
- tokenize() - lexical analysis (tokens or concrete-tree leaves)
- build_tree() - produce a ParseResult, recovering from syntax errors

The FrontEndRegistry routes a language hint to the right front-end and
enforces the limits that apply to every parse: the allow-list, the maximum
input size and the wall-clock budget.
"""

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from codewhisper.core.errors import (
    ParseError,
    ParseTimeoutError,
    SizeLimitError,
    UnsupportedLanguageError,
)
from codewhisper.parsing.nodes import Diagnostic, NodeTag, ParseResult, SourceSpan, UnifiedAstNode

logger = logging.getLogger(__name__)

LANGUAGE_ALIASES = {
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "ecmascript": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "python3": "python",
    "rs": "rust",
    "c++": "cpp",
    "cs": "csharp",
    "c#": "csharp",
    "golang": "go",
}

EXTENSION_LANGUAGES = {
    ".js": "javascript", ".jsx": "javascript", ".mjs": "javascript", ".cjs": "javascript",
    ".ts": "typescript", ".tsx": "typescript",
    ".py": "python", ".pyi": "python",
    ".rs": "rust",
    ".c": "c", ".h": "c",
    ".cpp": "cpp", ".cc": "cpp", ".cxx": "cpp", ".hpp": "cpp",
    ".cs": "csharp",
    ".java": "java",
    ".go": "go",
    ".kt": "kotlin",
    ".swift": "swift",
    ".rb": "ruby",
    ".php": "php",
    ".lua": "lua",
}


def normalize_language(language_hint: str) -> str:
    """Lowercase a language hint and resolve common aliases."""
    name = language_hint.strip().lower()
    return LANGUAGE_ALIASES.get(name, name)


def detect_language(file_path: str | Path) -> str:
    """Detect programming language from file extension."""
    ext = Path(file_path).suffix.lower()
    return EXTENSION_LANGUAGES.get(ext, "unknown")


class ParseBudget:
    """Wall-clock budget for a single parse call."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.deadline = time.monotonic() + seconds

    def check(self) -> None:
        """Raise ParseTimeoutError once the deadline has passed."""
        if time.monotonic() >= self.deadline:
            raise ParseTimeoutError(self.seconds)


class LanguageFrontEnd(ABC):
    """Abstract base class for all front-ends."""

    #: Extra names this front-end answers to besides ``language``.
    dialects: tuple[str, ...] = ()

    @property
    @abstractmethod
    def language(self) -> str:
        """Canonical language name."""
        ...

    @abstractmethod
    def tokenize(self, source: str, budget: Optional[ParseBudget] = None) -> list[Any]:
        """Split source text into tokens."""
        ...

    @abstractmethod
    def build_tree(
        self,
        source: str,
        source_file: str,
        budget: ParseBudget,
        language: str,
    ) -> ParseResult:
        """Build a unified tree, recording diagnostics for malformed regions."""
        ...

    def parse(
        self,
        source: str,
        source_file: str = "<memory>",
        budget: Optional[ParseBudget] = None,
        language: Optional[str] = None,
    ) -> ParseResult:
        """
        Parse source text into a unified tree.

        Raises:
            ParseError: Nothing at all could be recovered from the input
            ParseTimeoutError: The budget ran out
        """
        budget = budget or ParseBudget(float("inf"))
        budget.check()
        try:
            result = self.build_tree(source, source_file, budget, language or self.language)
        except RecursionError:
            raise ParseError("Input nests too deeply") from None

        if result.diagnostics:
            recovered = [c for c in result.tree.children if c.tag is not NodeTag.ERROR]
            if not recovered:
                first = result.diagnostics[0]
                raise ParseError(first.message, (first.line, first.column))
            logger.debug(
                f"Recovered partial {result.language} tree for {source_file} "
                f"with {len(result.diagnostics)} diagnostics"
            )
        return result

    @staticmethod
    def module_node(source: str, source_file: str, children: list[UnifiedAstNode]) -> UnifiedAstNode:
        lines = source.split("\n")
        span = SourceSpan(source_file, 1, 0, len(lines), len(lines[-1]) if lines else 0)
        return UnifiedAstNode(NodeTag.MODULE, span, {}, children)

    @staticmethod
    def error_node(source_file: str, diagnostic: Diagnostic, end_line: int, end_column: int) -> UnifiedAstNode:
        span = SourceSpan(source_file, diagnostic.line, diagnostic.column, end_line, end_column)
        return UnifiedAstNode(NodeTag.ERROR, span, {"message": diagnostic.message})


class FrontEndRegistry:
    """Registry of available front-ends plus the shared parse limits."""

    def __init__(
        self,
        supported_languages: list[str],
        max_code_size: int = 10 * 1024,
        parse_timeout: float = 2.0,
        fallback: Optional[LanguageFrontEnd] = None,
    ) -> None:
        self._front_ends: dict[str, LanguageFrontEnd] = {}
        self.supported_languages = [normalize_language(lang) for lang in supported_languages]
        self.max_code_size = max_code_size
        self.parse_timeout = parse_timeout
        self.fallback = fallback

    def register(self, front_end: LanguageFrontEnd) -> None:
        """Register a front-end under its language and dialect names."""
        self._front_ends[front_end.language] = front_end
        for dialect in front_end.dialects:
            self._front_ends[dialect] = front_end

    def resolve(self, language_hint: str) -> LanguageFrontEnd:
        """
        Pick the front-end for a language hint.

        Allowed languages without a dedicated front-end go to the fallback.

        Raises:
            UnsupportedLanguageError: Language is outside the allow-list
        """
        language = normalize_language(language_hint)
        if language not in self.supported_languages:
            raise UnsupportedLanguageError(language, self.supported_languages)
        front_end = self._front_ends.get(language)
        if front_end is not None:
            return front_end
        if self.fallback is None:
            raise UnsupportedLanguageError(language, self.supported_languages)
        return self.fallback

    def parse(
        self,
        source: str,
        language_hint: str,
        source_file: str = "<memory>",
    ) -> ParseResult:
        """
        Parse source with the limits applied.

        Raises:
            SizeLimitError: Input larger than max_code_size bytes
            UnsupportedLanguageError: Language outside the allow-list
            ParseTimeoutError: Wall-clock budget exceeded
            ParseError: Input could not be recovered at all
        """
        size = len(source.encode("utf-8"))
        if size > self.max_code_size:
            raise SizeLimitError(size, self.max_code_size)

        front_end = self.resolve(language_hint)
        budget = ParseBudget(self.parse_timeout)
        return front_end.parse(
            source,
            source_file=source_file,
            budget=budget,
            language=normalize_language(language_hint),
        )

    def languages(self) -> list[str]:
        """Languages accepted by parse(), in allow-list order."""
        return list(self.supported_languages)
