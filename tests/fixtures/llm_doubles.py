"""
Scripted translation backend for tests.
"""

import inspect
import re

from booktranslator.core.llm.base import LLMProvider

_TRANSLATE_BLOCK = re.compile(r'<translate>\n(.*)\n</translate>', re.DOTALL)


def segment_text(messages):
    """Text sent for translation in a chat request ('' for glossary requests)."""
    match = _TRANSLATE_BLOCK.search(messages[-1]['content'])
    return match.group(1) if match else ''


def is_glossary_request(messages):
    return 'glossary of proper nouns' in messages[0]['content']


def default_handler(messages):
    """Empty glossary, every segment prefixed with '译:'."""
    if is_glossary_request(messages):
        return '{}'
    return f"译:{segment_text(messages)}"


class ScriptedProvider(LLMProvider):
    """
    Backend double driven by a handler.

    The handler receives the messages and returns the response text, an
    exception instance to raise, or an awaitable resolving to either.
    """

    def __init__(self, handler=None):
        super().__init__(model="scripted")
        self.handler = handler or default_handler
        self.calls = []

    async def chat(self, messages, max_tokens, temperature):
        self.calls.append({'messages': messages, 'max_tokens': max_tokens,
                           'temperature': temperature})
        result = self.handler(messages)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, Exception):
            raise result
        return result

    def translated_texts(self):
        """Segment texts of the translation requests, in call order."""
        return [segment_text(call['messages']) for call in self.calls
                if not is_glossary_request(call['messages'])]

    def glossary_calls(self):
        return [call for call in self.calls if is_glossary_request(call['messages'])]
