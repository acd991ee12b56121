"""
OpenAI-compatible provider implementation.

Works with any endpoint speaking the chat-completions shape (OpenAI,
DeepSeek, OpenRouter, vLLM, llama.cpp, LM Studio, ...).
"""

import json
import time
from typing import List, Optional

import httpx

from ..base import ChatMessage, LLMProvider
from booktranslator.config import REQUEST_TIMEOUT
from booktranslator.core.exceptions import (
    LLMConnectionError,
    LLMRateLimitError,
    LLMResponseError,
)
from booktranslator.utils import unified_logger as log
from booktranslator.utils.unified_logger import LogType


class OpenAICompatibleProvider(LLMProvider):
    """Chat-completions client: ``POST {api_base_url}/chat/completions``"""

    def __init__(self, api_base_url: str, model: str, api_key: Optional[str] = None,
                 timeout: float = REQUEST_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(model, timeout=timeout, transport=transport)
        self.api_endpoint = f"{api_base_url.rstrip('/')}/chat/completions"
        self.api_key = api_key

    async def chat(self, messages: List[ChatMessage], max_tokens: int,
                   temperature: float) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        log.debug("LLM Request", LogType.LLM_REQUEST, {
            'model': self.model,
            'system_prompt': next((m['content'] for m in messages if m['role'] == 'system'), ''),
            'user_prompt': next((m['content'] for m in messages if m['role'] == 'user'), ''),
        })

        client = await self._get_client()
        started = time.monotonic()
        try:
            response = await client.post(self.api_endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise LLMConnectionError(f"Request timed out after {self.timeout}s",
                                     context={'endpoint': self.api_endpoint}) from e
        except httpx.TransportError as e:
            raise LLMConnectionError(f"Connection failed: {e}",
                                     context={'endpoint': self.api_endpoint}) from e

        if response.status_code == 429:
            retry_after = response.headers.get('retry-after')
            raise LLMRateLimitError(
                "Rate limit exceeded",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code >= 300:
            raise LLMResponseError(
                f"LLM API error: {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Malformed LLM response: {e}",
                                   status_code=response.status_code) from e

        if not content or not content.strip():
            raise LLMResponseError("Empty LLM response", status_code=response.status_code)

        log.debug("LLM Response", LogType.LLM_RESPONSE, {
            'response': content,
            'execution_time': time.monotonic() - started,
        })
        return content
