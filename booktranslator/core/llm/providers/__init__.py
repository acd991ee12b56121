"""
Concrete translation backend implementations.
"""

from .openai import OpenAICompatibleProvider

__all__ = ['OpenAICompatibleProvider']
