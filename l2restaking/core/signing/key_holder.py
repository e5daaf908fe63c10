"""
Key-holders: whoever owns the private key behind a signature.

A browser wallet, a hardware device or a local key all fit the
:class:`KeyHolder` protocol. Calls may suspend for as long as the owner
takes to approve; cancelling the awaiting task abandons the request.
"""

from __future__ import annotations

from typing import Any, Dict, Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount


@runtime_checkable
class KeyHolder(Protocol):
    @property
    def address(self) -> str:
        ...

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        """Sign an EIP-712 payload; raise SigningRejectedError if the owner declines."""
        ...

    async def sign_digest(self, digest: bytes) -> bytes:
        """Sign a raw 32-byte digest without any message prefix."""
        ...


class LocalAccountKeyHolder:
    """Key-holder backed by an in-process eth-account key."""

    def __init__(self, account: LocalAccount) -> None:
        self._account = account

    @classmethod
    def from_key(cls, private_key: str) -> "LocalAccountKeyHolder":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        signable = encode_typed_data(full_message=typed_data)
        signed = self._account.sign_message(signable)
        return bytes(signed.signature)

    async def sign_digest(self, digest: bytes) -> bytes:
        # Raw hash signing: DelegationManager recovers from the bare digest
        signed = self._account.unsafe_sign_hash(digest)
        return bytes(signed.signature)
