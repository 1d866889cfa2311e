"""
Suggestion ranking over learned patterns.
"""

from codewhisper.suggestions.generator import Suggestion, SuggestionContext, SuggestionGenerator

__all__ = ["Suggestion", "SuggestionContext", "SuggestionGenerator"]
