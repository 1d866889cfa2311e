"""
CodeWhisper - local code pattern learning engine.
"""

from codewhisper.engine import CodeWhisperEngine

__version__ = "0.1.0"

__all__ = ["CodeWhisperEngine", "__version__"]
