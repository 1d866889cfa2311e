"""
Local API surface: the envelope protocol and the FastAPI app serving it.
"""

from codewhisper.api.protocol import MessageDispatcher, error_envelope, success_envelope
from codewhisper.api.server import create_app

__all__ = ["MessageDispatcher", "create_app", "error_envelope", "success_envelope"]
