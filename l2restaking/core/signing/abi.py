"""
Minimal ABI word encoders.

Only the static head/tail layouts used by the relay are supported: uint,
address, bytes32, dynamic bytes, and arrays of static (address, uint256)
tuples. All encoders return lowercase hex without a 0x prefix.
"""

from __future__ import annotations

from typing import Sequence, Tuple, Union

from eth_utils import is_hex_address, keccak, to_checksum_address

from ..recovery.errors import ValidationError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

HexOrBytes = Union[str, bytes]


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def to_bytes(value: HexOrBytes) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    hex_data = strip_0x(value)
    if len(hex_data) % 2 != 0:
        raise ValidationError("Byte data must have an even-length hex string")
    try:
        return bytes.fromhex(hex_data)
    except ValueError as exc:
        raise ValidationError(f"Invalid hex data: {value[:20]}") from exc


def to_hex(value: bytes) -> str:
    return "0x" + value.hex()


def require_address(value: str, field_name: str = "address") -> str:
    """Return the checksummed form of ``value`` or raise ValidationError."""
    if not isinstance(value, str) or not is_hex_address(value):
        raise ValidationError(f"Invalid {field_name}: {value!r}", field_name=field_name)
    return to_checksum_address(value)


def is_zero_address(value: str) -> bool:
    return strip_0x(value).lower() == strip_0x(ZERO_ADDRESS)


def encode_uint(value: int, bits: int = 256) -> str:
    if value < 0:
        raise ValidationError("Value must be non-negative")
    if value >= 1 << bits:
        raise ValidationError(f"Value does not fit in uint{bits}")
    return hex(value)[2:].rjust(64, "0")


def encode_address(address: str) -> str:
    addr = strip_0x(address).lower()
    if len(addr) != 40 or not is_hex_address("0x" + addr):
        raise ValidationError(f"Invalid address length: {address}")
    return addr.rjust(64, "0")


def encode_bytes32(value: HexOrBytes) -> str:
    raw = to_bytes(value)
    if len(raw) != 32:
        raise ValidationError(f"bytes32 value must be 32 bytes, got {len(raw)}")
    return raw.hex()


def encode_bytes(data: HexOrBytes) -> str:
    """Length word followed by right-padded data (the tail of a dynamic bytes)."""
    raw = to_bytes(data)
    padded_len = ((len(raw) + 31) // 32) * 32
    return encode_uint(len(raw)) + raw.hex() + "00" * (padded_len - len(raw))


def encode_token_amounts(token_amounts: Sequence[Tuple[str, int]]) -> str:
    """Tail of a dynamic ``(address,uint256)[]``; tuples are static so sit inline."""
    out = encode_uint(len(token_amounts))
    for token, amount in token_amounts:
        out += encode_address(token) + encode_uint(amount)
    return out


def selector_from_signature(signature: str) -> str:
    selector = keccak(text=signature)[:4].hex()
    return f"0x{selector}"


def decode_address_word(word: HexOrBytes) -> str:
    raw = to_bytes(word)
    if len(raw) != 32:
        raise ValidationError("Address word must be 32 bytes")
    return to_checksum_address("0x" + raw[12:].hex())


def decode_uint_word(word: HexOrBytes) -> int:
    raw = to_bytes(word)
    if len(raw) != 32:
        raise ValidationError("uint word must be 32 bytes")
    return int.from_bytes(raw, "big")
