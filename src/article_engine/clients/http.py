"""Async JSON-over-HTTP base for provider adapters."""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from article_engine.errors import AuthenticationError, BadRequestError, ProviderError

log = logging.getLogger(__name__)


class AsyncJSONClient:
    """httpx.AsyncClient wrapper with status mapping and retry of transient failures.

    401/403 raise AuthenticationError and other 4xx raise BadRequestError, neither
    retried. 429, 5xx, timeouts and connection errors are retried with
    exponential backoff and then raised as a transient ProviderError.
    """

    service_name = "provider"

    def __init__(
        self,
        base_url: str,
        headers: dict | None = None,
        timeout: float = 15,
        retries: int = 2,
        backoff: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.backoff = backoff
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers or {}

    async def aclose(self):
        await self._client.aclose()

    async def _post(self, endpoint: str, payload: dict) -> dict | list:
        return await self._request("POST", endpoint, json=payload)

    async def _request(self, method: str, endpoint: str, **kwargs) -> dict | list:
        url = f"{self.base_url}{endpoint}"
        last_error: ProviderError | None = None

        for attempt in range(self.retries + 1):
            if attempt:
                wait = self.backoff * 2 ** (attempt - 1)
                log.warning(f"{self.service_name}: retry {attempt}/{self.retries} for {endpoint} in {wait:.1f}s")
                await asyncio.sleep(wait)

            start = time.monotonic()
            try:
                resp = await self._client.request(method, url, headers=self._headers, **kwargs)
            except httpx.TimeoutException:
                last_error = ProviderError(f"{self.service_name}: timeout on {endpoint}")
                continue
            except httpx.TransportError as e:
                last_error = ProviderError(f"{self.service_name}: connection error on {endpoint}: {e}")
                continue

            log.info(
                f"{method} {endpoint} -> {resp.status_code}",
                extra={
                    "endpoint": endpoint,
                    "method": method,
                    "status_code": resp.status_code,
                    "response_time": round(time.monotonic() - start, 3),
                },
            )

            if resp.status_code in (401, 403):
                raise AuthenticationError(
                    f"{self.service_name}: authentication failed ({resp.status_code})", resp.status_code
                )
            if resp.status_code == 429 or resp.status_code >= 500:
                last_error = ProviderError(
                    f"{self.service_name}: {endpoint} returned {resp.status_code}", resp.status_code
                )
                continue
            if resp.status_code >= 400:
                raise BadRequestError(
                    f"{self.service_name}: {endpoint} returned {resp.status_code}: {resp.text[:200]}",
                    resp.status_code,
                )

            try:
                return resp.json()
            except ValueError:
                raise ProviderError(f"{self.service_name}: {endpoint} returned invalid JSON", resp.status_code)

        raise last_error or ProviderError(f"{self.service_name}: {endpoint} failed")
