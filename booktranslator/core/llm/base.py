"""
Base class for translation backends.

A provider performs exactly one request per call; retrying is the
caller's business (see RetryManager).
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional
import httpx

from booktranslator.config import REQUEST_TIMEOUT

ChatMessage = Dict[str, str]


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    def __init__(self, model: str, timeout: float = REQUEST_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the LLM provider.

        Args:
            model: Model name/identifier
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a persistent HTTP client with connection pooling"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    async def chat(self, messages: List[ChatMessage], max_tokens: int,
                   temperature: float) -> str:
        """
        Send one chat request.

        Args:
            messages: System/user messages
            max_tokens: Completion token limit
            temperature: Sampling temperature

        Returns:
            The response text (never empty)

        Raises:
            LLMError: On transport failure, non-2xx status or empty content
        """
        pass
