"""
Adapters for LLM completion backends.

Provider-agnostic architecture: Protocol defines WHAT, implementations define HOW.
"""

from .base import CompletionProvider
from .mock import MockAdapter
from .schema import CompletionRequest

__all__ = ["CompletionProvider", "CompletionRequest", "MockAdapter"]
