"""Async JSON-RPC client for read-only chain access."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.recovery.errors import (
    ContractRevertError,
    NetworkError,
    ProviderError,
    RateLimitError,
    RpcTimeoutError,
)
from ..core.recovery.strategies import RetryConfig, RetryStrategy
from ..core.signing.abi import HexOrBytes, to_bytes, to_hex

logger = logging.getLogger(__name__)

# JSON-RPC error codes
EXECUTION_REVERTED = 3
LIMIT_EXCEEDED = -32005


class JsonRpcClient:
    """Thin httpx wrapper exposing the few calls the relay needs.

    Transport failures surface as recoverable errors; a revert surfaces as
    :class:`ContractRevertError` so callers can tell the two apart.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        chain_id: int,
        timeout_s: Optional[float] = None,
        retry: Optional[RetryStrategy] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self._client = client or httpx.AsyncClient(timeout=timeout_s or settings.rpc_timeout_seconds)
        self._retry = retry or RetryStrategy(
            RetryConfig(max_attempts=settings.rpc_max_attempts),
            logger=logger,
        )
        self._ids = itertools.count(1)

    async def _post(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
        except httpx.TimeoutException as exc:
            raise RpcTimeoutError(f"{method} timed out on chain {self.chain_id}", operation=method) from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"{method} failed on chain {self.chain_id}: {exc}", provider="rpc") from exc

        if response.status_code == 429:
            raise RateLimitError(f"RPC rate limited on chain {self.chain_id}", provider="rpc")
        if response.status_code >= 400:
            raise ProviderError(
                f"RPC returned HTTP {response.status_code}",
                provider="rpc",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("RPC returned a non-JSON body", provider="rpc") from exc

        error = body.get("error")
        if error:
            code = error.get("code")
            message = error.get("message", "unknown RPC error")
            if code == EXECUTION_REVERTED:
                raise ContractRevertError(message, error_data=error.get("data"))
            if code == LIMIT_EXCEEDED:
                raise RateLimitError(message, provider="rpc")
            raise ProviderError(f"RPC error {code}: {message}", provider="rpc")

        return body.get("result")

    async def request(self, method: str, params: List[Any]) -> Any:
        return await self._retry.execute(
            lambda: self._post(method, params),
            context={"operation": f"{method}@{self.chain_id}"},
        )

    async def eth_call(self, to: str, data: HexOrBytes, block: str = "latest") -> bytes:
        result = await self.request("eth_call", [{"to": to, "data": to_hex(to_bytes(data))}, block])
        if not isinstance(result, str):
            raise ProviderError("eth_call returned no data", provider="rpc")
        return to_bytes(result)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Return the receipt, or None while the transaction is not mined."""
        return await self.request("eth_getTransactionReceipt", [tx_hash])

    async def close(self) -> None:
        await self._client.aclose()


_l1_client: Optional[JsonRpcClient] = None
_l2_client: Optional[JsonRpcClient] = None


def get_l1_client() -> JsonRpcClient:
    """Get the singleton Ethereum Sepolia client."""
    global _l1_client
    if _l1_client is None:
        _l1_client = JsonRpcClient(settings.sepolia_rpc_url, chain_id=int(settings.l1_chain_id))
    return _l1_client


def get_l2_client() -> JsonRpcClient:
    """Get the singleton Base Sepolia client."""
    global _l2_client
    if _l2_client is None:
        _l2_client = JsonRpcClient(settings.base_sepolia_rpc_url, chain_id=int(settings.l2_chain_id))
    return _l2_client


async def close_clients() -> None:
    global _l1_client, _l2_client
    for client in (_l1_client, _l2_client):
        if client is not None:
            await client.close()
    _l1_client = None
    _l2_client = None
