"""
HTTP SQL client for a Cloudflare-D1-compatible query API.

Request:  ``POST {base_url}/query`` with ``{"sql": ..., "params": [...]}``
          (batch: ``{"batch": [{"sql": ..., "params": [...]}, ...]}``)
Response: ``{"success": bool, "errors": [...],
            "result": [{"results": [...], "success": bool, "meta": {...}}]}``
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx

from booktranslator.config import STORE_MAX_RETRIES, STORE_RETRY_BASE_DELAY, STORE_TIMEOUT
from booktranslator.core.exceptions import (
    RetryExhaustedError,
    StoreConnectionError,
    StoreError,
    StoreQueryError,
    StoreRateLimitError,
    StoreRequestError,
    StoreServerError,
)
from booktranslator.core.retry_manager import RetryConfig, RetryManager
from booktranslator.persistence.store import QueryResult, Statement, Store
from booktranslator.utils import unified_logger as log
from booktranslator.utils.unified_logger import LogType

CLOUDFLARE_API = "https://api.cloudflare.com/client/v4"


def _error_text(payload: Dict[str, Any]) -> str:
    errors = payload.get('errors') or []
    messages = [e.get('message', str(e)) if isinstance(e, dict) else str(e) for e in errors]
    return '; '.join(messages) or 'unknown error'


def _to_result(entry: Dict[str, Any], sql: str) -> QueryResult:
    if entry.get('success') is False:
        raise StoreQueryError(entry.get('error') or 'Statement failed', sql=sql)
    meta = entry.get('meta') or {}
    return QueryResult(
        rows=list(entry.get('results') or []),
        changes=int(meta.get('changes') or 0),
        last_row_id=meta.get('last_row_id'),
    )


class RemoteStore(Store):
    """
    Retrying SQL client over HTTP.

    Transport failures, 429 and 5xx answers are retried with exponential
    backoff (base delay doubling). Other 4xx answers and statements
    reported unsuccessful are raised at once.
    """

    def __init__(self, base_url: str, api_token: str,
                 retry_config: Optional[RetryConfig] = None,
                 timeout: float = STORE_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            base_url: Database endpoint; ``/query`` is appended
            api_token: Bearer token
            retry_config: Defaults to STORE_MAX_RETRIES retries from STORE_RETRY_BASE_DELAY
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.query_url = f"{base_url.rstrip('/')}/query"
        self.api_token = api_token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.retry_manager = RetryManager(
            retry_config or RetryConfig.from_retries(STORE_MAX_RETRIES, STORE_RETRY_BASE_DELAY),
            name="store_query",
        )

    @classmethod
    def for_cloudflare_d1(cls, account_id: str, database_id: str, api_token: str,
                          **kwargs) -> 'RemoteStore':
        """Client for a D1 database through the Cloudflare REST API."""
        base_url = f"{CLOUDFLARE_API}/accounts/{account_id}/d1/database/{database_id}"
        return cls(base_url, api_token, **kwargs)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "Authorization": f"Bearer {self.api_token}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        payload = {"sql": sql, "params": list(params)}
        entries = await self._execute(payload, f"store_query: {sql.split()[0].upper()}")
        if not entries:
            return QueryResult()
        return _to_result(entries[0], sql)

    async def batch(self, statements: Sequence[Statement]) -> List[QueryResult]:
        if not statements:
            return []
        payload = {"batch": [{"sql": sql, "params": list(params)} for sql, params in statements]}
        entries = await self._execute(payload, f"store_batch: {len(statements)} statements")
        return [_to_result(entry, sql) for entry, (sql, _) in zip(entries, statements)]

    async def _execute(self, payload: Dict[str, Any], operation_id: str) -> List[Dict[str, Any]]:
        """Post with retry; on exhaustion the last store error is raised."""
        try:
            return await self.retry_manager.execute_with_retry(
                self._post, payload, operation_id=operation_id
            )
        except RetryExhaustedError as e:
            if isinstance(e.original_error, StoreError):
                raise e.original_error from e
            raise

    async def _post(self, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        """One HTTP round trip, mapped onto the StoreError hierarchy."""
        client = await self._get_client()
        try:
            response = await client.post(self.query_url, json=payload)
        except httpx.TimeoutException as e:
            raise StoreConnectionError(f"Store request timed out after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise StoreConnectionError(f"Store connection failed: {e}") from e

        status = response.status_code
        if status == 429:
            raise StoreRateLimitError("Store rate limit exceeded")
        if status >= 500:
            raise StoreServerError(f"Store API error {status}: {response.text[:300]}", status_code=status)
        if status >= 400:
            raise StoreRequestError(f"Store API rejected request ({status}): {response.text[:300]}",
                                    status_code=status)

        try:
            data = response.json()
        except ValueError as e:
            raise StoreServerError(f"Store API returned invalid JSON: {e}", status_code=status) from e

        if not data.get('success', False):
            raise StoreQueryError(f"Store query failed: {_error_text(data)}",
                                  sql=payload.get('sql'))

        log.debug(f"Store request ok ({status})", LogType.STORE_OPERATION)
        return list(data.get('result') or [])
