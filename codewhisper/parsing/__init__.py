"""
Language front-ends.

Each front-end turns source text into the shared UnifiedAstNode vocabulary.
create_registry() wires the built-in front-ends together with the limits
from configuration.
"""

from codewhisper.core.config import EngineConfig
from codewhisper.parsing.base import (
    FrontEndRegistry,
    LanguageFrontEnd,
    ParseBudget,
    detect_language,
    normalize_language,
)
from codewhisper.parsing.ecmascript import EcmaScriptFrontEnd
from codewhisper.parsing.generic import GenericFrontEnd
from codewhisper.parsing.nodes import Diagnostic, NodeTag, ParseResult, SourceSpan, UnifiedAstNode
from codewhisper.parsing.python_lang import PythonFrontEnd
from codewhisper.parsing.rust import RustFrontEnd
from codewhisper.parsing.treesitter import TreeSitterFrontEnd


def create_registry(config: EngineConfig) -> FrontEndRegistry:
    """Create a registry with all built-in front-ends."""
    registry = FrontEndRegistry(
        supported_languages=config.supported_languages,
        max_code_size=config.max_code_size,
        parse_timeout=config.parse_timeout,
        fallback=GenericFrontEnd(),
    )
    registry.register(EcmaScriptFrontEnd())
    registry.register(PythonFrontEnd())
    registry.register(RustFrontEnd())
    return registry


__all__ = [
    "Diagnostic",
    "EcmaScriptFrontEnd",
    "FrontEndRegistry",
    "GenericFrontEnd",
    "LanguageFrontEnd",
    "NodeTag",
    "ParseBudget",
    "ParseResult",
    "PythonFrontEnd",
    "RustFrontEnd",
    "SourceSpan",
    "TreeSitterFrontEnd",
    "UnifiedAstNode",
    "create_registry",
    "detect_language",
    "normalize_language",
]
