"""
http.py - JSON-RPC tool transport over HTTP.

Each request is POSTed as a JSON body to a single endpoint (for example the
service's own ``/api/v1/tools/rpc``). Connection failures, 429 and 5xx are
retried with exponential backoff; other HTTP errors fail immediately.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from chorus_service.core.errors import TransportError, classify_error, with_retry
from chorus_service.tools.transports.jsonrpc import JsonRpcToolTransport

logger = logging.getLogger(__name__)


class HttpToolTransport(JsonRpcToolTransport):
    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        connect_timeout: float = 2.0,
        read_timeout: float = 10.0,
        max_retries: int = 2,
        backoff_base: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            url: JSON-RPC endpoint
            headers: Extra headers sent with every request
            connect_timeout: Socket connect timeout in seconds
            read_timeout: Socket read timeout in seconds
            max_retries: Retries for connection errors, 429 and 5xx
            backoff_base: First retry delay in seconds, doubled per attempt
            client: Pre-built client (tests pass one with an httpx.MockTransport)
        """
        super().__init__()
        if not url:
            raise ValueError("Tool server URL cannot be empty")
        self.url = url
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=connect_timeout, read=read_timeout, write=5.0, pool=5.0),
            headers={"Accept": "application/json", **(headers or {})},
        )

    async def _post(self, request: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post(self.url, json=request)
        logger.info("Tool RPC %s: status=%s", request.get("method"), response.status_code)
        response.raise_for_status()
        return response.json()

    async def _send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await with_retry(
                lambda: self._post(request),
                max_retries=self.max_retries,
                initial_delay=self.backoff_base,
            )
        except (httpx.HTTPError, ValueError) as e:
            err = classify_error(e)
            raise TransportError(
                f"Tool server request failed: {err.message}", status_code=err.status_code, cause=e
            ) from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
