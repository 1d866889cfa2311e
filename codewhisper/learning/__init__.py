"""
Pattern learning.

extractor turns unified trees into candidate patterns; learner (imported
from codewhisper.learning.learner) adjusts stored patterns from feedback.
"""

from codewhisper.learning.extractor import (
    CandidatePattern,
    CandidateSequence,
    PatternExtractor,
    PatternType,
    classify_naming,
)

__all__ = [
    "CandidatePattern",
    "CandidateSequence",
    "PatternExtractor",
    "PatternType",
    "classify_naming",
]
