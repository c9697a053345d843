"""
Base payment client implementing shared concerns: http, retry, logging.

Concrete providers subclass and implement provider-specific endpoints.
Transport/timeout errors are retried a bounded number of times; every other
failure (non-2xx, invalid JSON, exhausted retries) is logged and surfaced as
``None`` so callers never see provider exceptions.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"
    failure_event: str = "payment_provider_request_failed"

    def __init__(
        self,
        *,
        base_url: str = "",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._timeouts_cfg["total"],
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
        )

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self.timeouts,
                transport=self._transport,
                headers=self._default_headers(),
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        **log_fields: Any,
    ) -> Optional[dict[str, Any]]:
        """发送请求并返回 JSON 对象；任何失败都记录 warning 并返回 None"""

        async def _send() -> httpx.Response:
            async with self.client() as client:
                return await client.request(method, path, json=json, headers=headers)

        try:
            resp = await self._retry(_send)
        except httpx.HTTPError as e:
            self._log_failure(operation, error=type(e).__name__, **log_fields)
            return None

        if not resp.is_success:
            self._log_failure(operation, status_code=resp.status_code, **log_fields)
            return None
        try:
            data = resp.json()
        except ValueError:
            self._log_failure(operation, error="invalid_json", status_code=resp.status_code, **log_fields)
            return None
        if not isinstance(data, dict):
            self._log_failure(operation, error="unexpected_body", **log_fields)
            return None
        return data

    def _log_failure(self, operation: str, **kwargs) -> None:
        logger.warning(
            self.failure_event,
            provider=self.provider,
            operation=operation,
            **kwargs,
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
