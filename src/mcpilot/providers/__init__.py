"""LLM Provider implementations

This package contains the provider interface and the OpenAI implementation.
"""

from .base import LLMProvider, LLMResponse
from .openai import OpenAIProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "OpenAIProvider",
]
