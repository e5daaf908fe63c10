"""
CCIP lanes, EigenLayer call selectors, per-call gas limits and event topics.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from eth_utils import keccak


@dataclass(frozen=True, slots=True)
class CCIPChain:
    name: str
    chain_id: int
    chain_selector: int
    router: str
    bridge_token: str
    link: str


ETH_SEPOLIA = CCIPChain(
    name="ethSepolia",
    chain_id=11155111,
    chain_selector=16015286601757825753,
    router="0x0BF3dE8c5D3e8A2B34D2BEeB17ABfCeBaf363A59",
    bridge_token="0xAf03f2a302A2C4867d622dE44b213b8F870c0f1a",
    link="0x779877A7B0D9E8603169DdbD7836e478b4624789",
)

BASE_SEPOLIA = CCIPChain(
    name="baseSepolia",
    chain_id=84532,
    chain_selector=10344971235874465080,
    router="0xD3b06cEbF099CE7DA4AcCf578aaebFDBd6e88a93",
    bridge_token="0x886330448089754e998BcEfa2a56a91aD240aB60",
    link="0xE4aB69C077896252FAFBD49EFD26B5D171A32410",
)


# sendMessagePayNative(uint64,address,string,(address,uint256)[],uint256); the
# message is passed as raw bytes, which ABI-encode the same as string
SEND_MESSAGE_PAY_NATIVE_SELECTOR = "0x7132732a"

DEPOSIT_SELECTOR = "0xe7a050aa"  # deposit(address,address,uint256)
QUEUE_WITHDRAWALS_SELECTOR = "0x0dd8dd02"  # queueWithdrawals((address[],uint256[],address)[])
COMPLETE_WITHDRAWAL_SELECTOR = "0xe4cc3f90"  # completeQueuedWithdrawal(...)
PROCESS_CLAIM_SELECTOR = "0x3ccc861d"  # processClaim(...)
DELEGATE_TO_SELECTOR = "0xeea9064b"  # delegateTo(address,(bytes,uint256),bytes32)
UNDELEGATE_SELECTOR = "0xda8be864"  # undelegate(address)
MINT_EIGEN_AGENT_SELECTOR = "0xcc15a557"  # mintEigenAgent(bytes)

DEFAULT_GAS_LIMIT = 300_000

GAS_LIMITS: Dict[str, int] = {
    DEPOSIT_SELECTOR: 500_000,
    QUEUE_WITHDRAWALS_SELECTOR: 700_000,
    COMPLETE_WITHDRAWAL_SELECTOR: 800_000,
    DELEGATE_TO_SELECTOR: 400_000,
    UNDELEGATE_SELECTOR: 300_000,
    PROCESS_CLAIM_SELECTOR: 590_000,
}


# Read-only contract functions
GET_EIGEN_AGENT_SIGNATURE = "getEigenAgent(address)"
EXEC_NONCE_SIGNATURE = "execNonce()"
CALCULATE_DELEGATION_APPROVAL_DIGEST_SIGNATURE = (
    "calculateDelegationApprovalDigestHash(address,address,address,bytes32,uint256)"
)


# Event topics
MESSAGE_SENT_EVENT = "MessageSent(bytes32,uint64,address,(address,uint256)[],address,uint256)"
BRIDGING_WITHDRAWAL_TO_L2_EVENT = "BridgingWithdrawalToL2(address,(address,uint256)[])"
BRIDGING_REWARDS_TO_L2_EVENT = "BridgingRewardsToL2(address,(address,uint256)[])"

# From `cast sig-event`; pins the keccak backend and the event encoding
KNOWN_MESSAGE_SENT_SIGNATURE = "0xf41bc76bbe18ec95334bdb88f45c769b987464044ead28e11193a766ae8225cb"


def event_topic(signature: str) -> str:
    return "0x" + keccak(text=signature).hex()


MESSAGE_SENT_SIGNATURE = event_topic(MESSAGE_SENT_EVENT)
BRIDGING_WITHDRAWAL_TO_L2_SIGNATURE = event_topic(BRIDGING_WITHDRAWAL_TO_L2_EVENT)
BRIDGING_REWARDS_TO_L2_SIGNATURE = event_topic(BRIDGING_REWARDS_TO_L2_EVENT)


class EventSignatureMismatch(RuntimeError):
    """Raised at startup when the hashing primitive disagrees with a known topic."""


def verify_event_signatures() -> None:
    computed = event_topic(MESSAGE_SENT_EVENT)
    if computed != KNOWN_MESSAGE_SENT_SIGNATURE:
        raise EventSignatureMismatch(
            f"MessageSent topic {computed} does not match known {KNOWN_MESSAGE_SENT_SIGNATURE}"
        )
