"""
Translation backend clients.
"""

from .base import LLMProvider, ChatMessage
from .providers.openai import OpenAICompatibleProvider

__all__ = ['LLMProvider', 'ChatMessage', 'OpenAICompatibleProvider']
