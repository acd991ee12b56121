"""
Single-segment translation with glossary pinning and retry.
"""
import re
from typing import Dict, Optional, Sequence

from booktranslator.config import (
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
    CONTEXT_TAG_IN,
    CONTEXT_TAG_OUT,
    TRANSLATE_TAG_IN,
    TRANSLATE_TAG_OUT,
)
from booktranslator.core.exceptions import (
    LLMResponseError,
    RetryExhaustedError,
    SegmentTranslationError,
    TranslationError,
)
from booktranslator.core.llm.base import LLMProvider
from booktranslator.core.prompts import generate_translation_prompt, relevant_glossary_entries
from booktranslator.core.retry_manager import RetryConfig, RetryManager

_THINK_BLOCK = re.compile(r'<think>.*?</think>', re.DOTALL | re.IGNORECASE)
_MARKERS = re.compile(
    '|'.join(re.escape(tag) for tag in (TRANSLATE_TAG_IN, TRANSLATE_TAG_OUT, CONTEXT_TAG_IN, CONTEXT_TAG_OUT)),
    re.IGNORECASE,
)


def clean_translation(response: str) -> str:
    """Strip reasoning blocks and prompt markers from a backend response."""
    text = _THINK_BLOCK.sub('', response)
    text = _MARKERS.sub('', text)
    return text.strip()


class SegmentTranslator:
    """Translates one segment at a time.

    Every failure mode (transport, non-2xx, empty output) is retried with
    exponential backoff; once the budget is spent SegmentTranslationError
    is raised with the last error attached.
    """

    def __init__(self, provider: LLMProvider, retry_config: Optional[RetryConfig] = None,
                 max_tokens: int = LLM_MAX_TOKENS, temperature: float = LLM_TEMPERATURE):
        self.provider = provider
        self.retry_manager = RetryManager(retry_config or RetryConfig(), name="translate_segment")
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def translate(self, text: str, glossary: Dict[str, str], source_language: str,
                        target_language: str, context: Optional[Sequence[str]] = None) -> str:
        """
        Translate a segment.

        Args:
            text: Segment plain text
            glossary: Book glossary; only entries occurring in ``text`` are sent
            source_language: Source language code
            target_language: Target language code
            context: Plain text of preceding segments

        Returns:
            The cleaned translation (never empty)

        Raises:
            SegmentTranslationError: When every attempt failed
        """
        prompt = generate_translation_prompt(
            text,
            source_language,
            target_language,
            glossary_entries=relevant_glossary_entries(text, glossary or {}),
            context=context,
        )
        messages = prompt.to_messages()

        try:
            return await self.retry_manager.execute_with_retry(
                self._attempt, messages, operation_id="translate_segment"
            )
        except RetryExhaustedError as e:
            raise SegmentTranslationError(
                "Segment translation failed",
                original_error=e.original_error,
                context={'attempts': e.attempts, 'preview': text[:60]},
            ) from e
        except TranslationError as e:
            raise SegmentTranslationError("Segment translation failed", original_error=e) from e

    async def _attempt(self, messages) -> str:
        response = await self.provider.chat(messages, max_tokens=self.max_tokens,
                                            temperature=self.temperature)
        translated = clean_translation(response)
        if not translated:
            raise LLMResponseError("Translation is empty after cleanup")
        return translated
