"""
Book-wide proper-noun glossary extraction.
"""
import json
import re
from typing import Dict, List, Optional, Sequence

from booktranslator.config import (
    GLOSSARY_HEAD_SAMPLE,
    GLOSSARY_MIDDLE_SAMPLE,
    GLOSSARY_MIDDLE_THRESHOLD,
    GLOSSARY_TAIL_SAMPLE,
    GLOSSARY_TAIL_THRESHOLD,
    GLOSSARY_TEMPERATURE,
    LLM_MAX_TOKENS,
)
from booktranslator.core.exceptions import TranslationError
from booktranslator.core.llm.base import LLMProvider
from booktranslator.core.prompts import generate_glossary_prompt
from booktranslator.core.retry_manager import RetryConfig, RetryManager
from booktranslator.utils import unified_logger as log

_CODE_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)
_JSON_OBJECT = re.compile(r'\{.*\}', re.DOTALL)


def sample_texts(texts: Sequence[str]) -> List[str]:
    """
    Pick the segments sent for glossary extraction.

    The head of the book, a window from the middle of long books and the
    tail of medium ones. Windows can overlap on short books.
    """
    total = len(texts)
    samples = list(texts[:GLOSSARY_HEAD_SAMPLE])
    if total > GLOSSARY_MIDDLE_THRESHOLD:
        middle = total // 2 - GLOSSARY_MIDDLE_SAMPLE // 2
        samples.extend(texts[middle:middle + GLOSSARY_MIDDLE_SAMPLE])
    if total > GLOSSARY_TAIL_THRESHOLD:
        samples.extend(texts[-GLOSSARY_TAIL_SAMPLE:])
    return samples


def parse_glossary(response: str) -> Dict[str, str]:
    """
    Parse the backend answer into a glossary.

    Code fences are stripped; if the rest is not JSON the first ``{...}``
    span is tried. Non-string pairs are dropped. Returns {} on failure.
    """
    candidate = _CODE_FENCE.sub('', response.strip())
    data = None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(candidate)
        if match:
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError:
                data = None

    if not isinstance(data, dict):
        return {}
    return {key.strip(): value.strip() for key, value in data.items()
            if isinstance(key, str) and isinstance(value, str) and key.strip() and value.strip()}


class GlossaryExtractor:
    """One low-temperature request over a sample of the book."""

    def __init__(self, provider: LLMProvider, retry_config: Optional[RetryConfig] = None,
                 max_tokens: int = LLM_MAX_TOKENS, temperature: float = GLOSSARY_TEMPERATURE):
        self.provider = provider
        self.retry_manager = RetryManager(retry_config or RetryConfig(), name="extract_glossary")
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def extract(self, all_segment_texts: Sequence[str], source_language: str,
                      target_language: str) -> Dict[str, str]:
        """
        Extract the glossary.

        Never raises for backend or parse failures: the job continues with
        an empty glossary.
        """
        samples = sample_texts(all_segment_texts)
        if not samples:
            return {}

        prompt = generate_glossary_prompt('\n\n'.join(samples), source_language, target_language)
        try:
            response = await self.retry_manager.execute_with_retry(
                self.provider.chat,
                prompt.to_messages(),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                operation_id="extract_glossary",
            )
        except TranslationError as e:
            log.warning(f"Glossary extraction failed, continuing without glossary: {e}")
            return {}

        glossary = parse_glossary(response)
        if not glossary:
            log.warning("Glossary response could not be parsed, continuing without glossary")
        else:
            log.info(f"Glossary extracted: {len(glossary)} entries")
        return glossary
