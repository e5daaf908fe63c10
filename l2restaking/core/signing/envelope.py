"""
Signed execution envelope and CCIP dispatch calldata.

Envelope layout (what the L1 receiver slices from the end of the message):

    data ‖ abi.encode(signer) [32] ‖ uint256 expiry [32] ‖ signature r‖s‖v [65]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .abi import (
    HexOrBytes,
    decode_address_word,
    decode_uint_word,
    encode_address,
    encode_bytes,
    encode_token_amounts,
    encode_uint,
    require_address,
    strip_0x,
    to_bytes,
    to_hex,
)
from ..bridge.constants import (
    BASE_SEPOLIA,
    COMPLETE_WITHDRAWAL_SELECTOR,
    DEFAULT_GAS_LIMIT,
    DELEGATE_TO_SELECTOR,
    DEPOSIT_SELECTOR,
    ETH_SEPOLIA,
    GAS_LIMITS,
    MINT_EIGEN_AGENT_SELECTOR,
    PROCESS_CLAIM_SELECTOR,
    QUEUE_WITHDRAWALS_SELECTOR,
    SEND_MESSAGE_PAY_NATIVE_SELECTOR,
    UNDELEGATE_SELECTOR,
)
from ..bridge.models import TransactionType
from ..recovery.errors import ValidationError
from ...config import settings

SIGNATURE_LENGTH = 65
ENVELOPE_TRAILER_LENGTH = 32 + 32 + SIGNATURE_LENGTH
VALID_RECOVERY_IDS = frozenset({0, 1, 27, 28})
MAX_TOKEN_AMOUNTS = 16

_SELECTOR_TO_TYPE = {
    DEPOSIT_SELECTOR: TransactionType.DEPOSIT,
    QUEUE_WITHDRAWALS_SELECTOR: TransactionType.QUEUE_WITHDRAWAL,
    COMPLETE_WITHDRAWAL_SELECTOR: TransactionType.COMPLETE_WITHDRAWAL,
    DELEGATE_TO_SELECTOR: TransactionType.DELEGATE_TO,
    UNDELEGATE_SELECTOR: TransactionType.UNDELEGATE,
    PROCESS_CLAIM_SELECTOR: TransactionType.PROCESS_CLAIM,
    MINT_EIGEN_AGENT_SELECTOR: TransactionType.MINT_EIGEN_AGENT,
}


@dataclass(frozen=True, slots=True)
class SignedEnvelope:
    data: bytes
    signer: str
    expiry: int
    signature: bytes

    def to_bytes(self) -> bytes:
        return pack_envelope(self.data, self.signer, self.expiry, self.signature)

    def to_hex(self) -> str:
        return to_hex(self.to_bytes())


def normalize_signature(signature: HexOrBytes) -> bytes:
    """Return the 65-byte r‖s‖v form of ``signature``.

    A hex signature that lost its leading zero nibble (129 hex chars) is
    left-padded back to 130. The recovery id is kept as given; both the
    0/1 and the 27/28 conventions are accepted.
    """
    if isinstance(signature, str):
        body = strip_0x(signature)
        if len(body) == SIGNATURE_LENGTH * 2 - 1:
            body = "0" + body
        raw = to_bytes(body)
    else:
        raw = bytes(signature)

    if len(raw) != SIGNATURE_LENGTH:
        raise ValidationError(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}",
            field_name="signature",
        )
    if raw[-1] not in VALID_RECOVERY_IDS:
        raise ValidationError(f"Invalid signature recovery id {raw[-1]}", field_name="signature")
    return raw


def pack_envelope(data: HexOrBytes, signer: str, expiry: int, signature: HexOrBytes) -> bytes:
    trailer = encode_address(require_address(signer, "signer")) + encode_uint(int(expiry))
    return to_bytes(data) + bytes.fromhex(trailer) + normalize_signature(signature)


def unpack_envelope(envelope: HexOrBytes) -> SignedEnvelope:
    raw = to_bytes(envelope)
    if len(raw) < ENVELOPE_TRAILER_LENGTH:
        raise ValidationError(
            f"Envelope shorter than its {ENVELOPE_TRAILER_LENGTH}-byte trailer",
            field_name="envelope",
        )
    sig_start = len(raw) - SIGNATURE_LENGTH
    expiry_start = sig_start - 32
    signer_start = expiry_start - 32
    return SignedEnvelope(
        data=raw[:signer_start],
        signer=decode_address_word(raw[signer_start:expiry_start]),
        expiry=decode_uint_word(raw[expiry_start:sig_start]),
        signature=raw[sig_start:],
    )


def function_selector(call_data: HexOrBytes) -> Optional[str]:
    raw = to_bytes(call_data)
    if len(raw) < 4:
        return None
    return "0x" + raw[:4].hex()


def detect_transaction_type(call_data: HexOrBytes) -> TransactionType:
    selector = function_selector(call_data)
    if selector is None:
        return TransactionType.OTHER
    return _SELECTOR_TO_TYPE.get(selector, TransactionType.OTHER)


def gas_limit_for(call_data: HexOrBytes) -> int:
    selector = function_selector(call_data)
    return GAS_LIMITS.get(selector or "", DEFAULT_GAS_LIMIT)


def encode_send_message_pay_native(
    dest_chain_selector: int,
    receiver: str,
    message: bytes,
    token_amounts: Sequence[Tuple[str, int]],
    gas_limit: int,
) -> str:
    """Calldata for ``sendMessagePayNative(uint64,address,bytes,(address,uint256)[],uint256)``.

    ``message`` must be the raw envelope bytes; a hex string here would be
    re-encoded as text and corrupt the payload.
    """
    if not isinstance(message, (bytes, bytearray)):
        raise ValidationError("CCIP message must be raw bytes", field_name="message")
    if len(token_amounts) > MAX_TOKEN_AMOUNTS:
        raise ValidationError(
            f"At most {MAX_TOKEN_AMOUNTS} token amounts per message",
            field_name="token_amounts",
        )

    head_words = 5
    message_tail = encode_bytes(bytes(message))
    message_offset = head_words * 32
    amounts_offset = message_offset + len(message_tail) // 2

    head = (
        encode_uint(int(dest_chain_selector), bits=64)
        + encode_address(require_address(receiver, "receiver"))
        + encode_uint(message_offset)
        + encode_uint(amounts_offset)
        + encode_uint(int(gas_limit))
    )
    tail = message_tail + encode_token_amounts(
        [(require_address(token, "token"), int(amount)) for token, amount in token_amounts]
    )
    return SEND_MESSAGE_PAY_NATIVE_SELECTOR + head + tail


def build_dispatch_call(
    envelope: bytes,
    inner_call_data: HexOrBytes,
    amount: int = 0,
    gas_limit: Optional[int] = None,
    receiver: Optional[str] = None,
) -> str:
    """Wrap a signed envelope for the L2 sender contract, targeting the L1 receiver."""
    receiver = receiver or settings.receiver_ccip_address
    if not receiver:
        raise ValidationError("receiver_ccip_address is not configured", field_name="receiver")
    token_amounts = [(BASE_SEPOLIA.bridge_token, amount)] if amount > 0 else []
    return encode_send_message_pay_native(
        ETH_SEPOLIA.chain_selector,
        receiver,
        envelope,
        token_amounts,
        gas_limit if gas_limit is not None else gas_limit_for(inner_call_data),
    )
