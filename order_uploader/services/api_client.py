"""HTTP adapter for the ingestion endpoint."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class IngestionClient:
    """
    HTTP client adapter for the ingestion endpoint.

    Implements IIngestionClient protocol. POSTs are sent once and the response
    is returned whatever its status (the transport classifies it); GETs are
    idempotent and retried on 5xx and network errors.
    """

    def __init__(
        self,
        endpoint_url: str,
        timeout: float = 120,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._endpoint_url = endpoint_url
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        # Script endpoints answer with a redirect to the content host.
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def endpoint_url(self) -> str:
        return self._endpoint_url

    async def post(self, body: bytes) -> httpx.Response:
        if not self._client:
            raise RuntimeError("IngestionClient not initialized. Use 'async with' context.")

        return await self._client.post(
            self._endpoint_url,
            content=body,
            headers={"Content-Type": "application/json"},
        )

    async def get(self, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        if not self._client:
            raise RuntimeError("IngestionClient not initialized. Use 'async with' context.")

        last_exception = None

        for attempt in range(self._max_retries):
            try:
                response = await self._client.get(
                    self._endpoint_url,
                    params=params,
                    headers={"Accept": "application/json"},
                )

                if response.status_code >= 500 and attempt < self._max_retries - 1:
                    logger.debug(f"GET returned {response.status_code}, retrying ({attempt + 1}/{self._max_retries})")
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue

                return response
            except httpx.TransportError as exc:
                last_exception = exc
                if attempt < self._max_retries - 1:
                    logger.debug(f"GET failed ({exc}), retrying ({attempt + 1}/{self._max_retries})")
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                raise

        if last_exception:
            raise last_exception
        raise RuntimeError(f"Failed to GET {self._endpoint_url} after {self._max_retries} attempts")
