"""
Operator registry.

Built once at startup from settings and shared read-only afterwards. Holds
display metadata for known operators and the signing keys of operators this
relay is allowed to approve delegations for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from eth_account import Account
from pydantic import BaseModel, ConfigDict, Field

from ..config import settings

logger = logging.getLogger(__name__)


class OperatorInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    address: str
    name: str
    description: str = ""
    website: str = ""
    is_active: bool = Field(default=True, alias="isActive")


KNOWN_OPERATORS: Tuple[OperatorInfo, ...] = (
    OperatorInfo(
        address="0xA4D423ED017F063AaF65f6B6B9C6Bc59f97d5164",
        name="Treasure Node 1",
        description="Treasure Node 1",
        is_active=True,
    ),
    OperatorInfo(
        address="0xaA61cC14ac3e048f26b9312E57ECf8156D9D27e3",
        name="Treasure Node2",
        description="Treasure Node 2",
        is_active=True,
    ),
    OperatorInfo(
        address="0x3d2FB9D26c5C66D0CA55247E4d40Cb4FBe0f5C03",
        name="Inactive Operator",
        description="Operator that no longer accepts delegations",
        is_active=False,
    ),
)


@dataclass(frozen=True)
class OperatorRegistry:
    """Immutable operator lookup keyed by lowercase address."""

    operators: Mapping[str, OperatorInfo]
    keys: Mapping[str, str]

    @classmethod
    def build(
        cls,
        private_keys: Iterable[str] = (),
        operators: Iterable[OperatorInfo] = KNOWN_OPERATORS,
    ) -> "OperatorRegistry":
        info: Dict[str, OperatorInfo] = {op.address.lower(): op for op in operators}
        keys: Dict[str, str] = {}
        for key in private_keys:
            address = Account.from_key(key).address.lower()
            keys[address] = key
            if address not in info:
                logger.info("Operator key loaded for unlisted operator %s", address)
        logger.info("Operator registry built with %d signing keys", len(keys))
        return cls(operators=MappingProxyType(info), keys=MappingProxyType(keys))

    def key_for(self, operator: str) -> Optional[str]:
        return self.keys.get(operator.lower())

    def get(self, address: str) -> Optional[OperatorInfo]:
        return self.operators.get(address.lower())

    def list_operators(self, include_inactive: bool = False) -> List[OperatorInfo]:
        return [op for op in self.operators.values() if include_inactive or op.is_active]


_registry: Optional[OperatorRegistry] = None


def get_operator_registry() -> OperatorRegistry:
    """Get the singleton registry built from OPERATOR_KEY{n} settings."""
    global _registry
    if _registry is None:
        _registry = OperatorRegistry.build(settings.operator_keys)
    return _registry
