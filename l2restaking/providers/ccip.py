"""Async client for the CCIP explorer message API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.bridge.models import CCIPMessage
from ..core.recovery.errors import (
    MessageNotFoundError,
    NetworkError,
    ProviderError,
    RateLimitError,
    RpcTimeoutError,
)
from ..core.recovery.strategies import RetryConfig, RetryStrategy

logger = logging.getLogger(__name__)


class CCIPClient:
    """Look up cross-chain message state on https://ccip.chain.link.

    An unknown message id raises :class:`MessageNotFoundError`; an
    unreachable explorer raises a recoverable transport error.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        retry: Optional[RetryStrategy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.ccip_api_base_url).rstrip("/")
        self.timeout_s = timeout_s or settings.ccip_timeout_seconds
        self._retry = retry or RetryStrategy(RetryConfig(max_attempts=2), logger=logger)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "user-agent": "L2RestakingRelay/0.1",
        }

    async def _fetch(self, message_id: str) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.get(f"/message/{message_id}", headers=self._headers())
        except httpx.TimeoutException as exc:
            raise RpcTimeoutError(f"CCIP lookup for {message_id} timed out", operation="ccip.message") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"CCIP explorer unreachable: {exc}", provider="ccip") from exc

        if response.status_code == 404:
            raise MessageNotFoundError(message_id)
        if response.status_code == 429:
            raise RateLimitError("CCIP explorer rate limited", provider="ccip")
        if response.status_code >= 400:
            raise ProviderError(
                f"CCIP explorer returned HTTP {response.status_code}",
                provider="ccip",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError("CCIP explorer returned a non-JSON body", provider="ccip") from exc
        if not isinstance(payload, dict):
            raise ProviderError("CCIP explorer returned an unexpected payload", provider="ccip")
        return payload

    async def get_message(self, message_id: str) -> CCIPMessage:
        payload = await self._retry.execute(
            lambda: self._fetch(message_id),
            context={"operation": "ccip.message"},
        )
        return CCIPMessage.from_api(payload, message_id)


_ccip_client: Optional[CCIPClient] = None


def get_ccip_client() -> CCIPClient:
    """Get the singleton CCIP explorer client."""
    global _ccip_client
    if _ccip_client is None:
        _ccip_client = CCIPClient()
    return _ccip_client
