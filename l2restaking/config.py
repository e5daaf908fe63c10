import os

from pathlib import Path
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

MAX_OPERATOR_KEYS = 10


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Collect the numbered OPERATOR_KEY{n} variables into operator_keys."""

        super().model_post_init(__context)

        if not self.operator_keys:
            collected = []
            for index in range(1, MAX_OPERATOR_KEYS + 1):
                value = os.getenv(f"OPERATOR_KEY{index}")
                if value:
                    collected.append(value.strip())
            if collected:
                object.__setattr__(self, "operator_keys", collected)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=3001, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Storage
    database_url: str = Field(
        default=f"sqlite:///{BASE_DIR / 'transactions.db'}",
        description="SQLAlchemy URL for the transaction ledger",
    )
    legacy_transactions_path: str = Field(
        default="",
        description="Optional transactions.json imported into the ledger on startup",
    )

    # Chains
    l1_chain_id: str = Field(default="11155111", description="Ethereum Sepolia chain id")
    l2_chain_id: str = Field(default="84532", description="Base Sepolia chain id")
    sepolia_rpc_url: str = Field(
        default="https://ethereum-sepolia.publicnode.com",
        description="JSON-RPC endpoint for the L1 chain",
    )
    base_sepolia_rpc_url: str = Field(
        default="https://sepolia.base.org",
        description="JSON-RPC endpoint for the L2 chain",
    )
    rpc_timeout_seconds: float = Field(default=20.0, description="Per-request RPC timeout")
    rpc_max_attempts: int = Field(default=3, description="Attempts per RPC call before giving up")

    # CCIP explorer
    ccip_api_base_url: str = Field(
        default="https://ccip.chain.link/api/h/atlas",
        description="Base URL of the CCIP explorer message API",
    )
    ccip_timeout_seconds: float = Field(default=15.0, description="CCIP explorer request timeout")

    # Contracts
    delegation_manager_address: str = Field(
        default="0x2604e5a6b77b5Ab95e38b6fA6fc1F5db5585F562",
        description="EigenLayer DelegationManager on L1",
    )
    agent_factory_address: str = Field(
        default="",
        description="AgentFactory on L1, used to resolve a user's EigenAgent",
    )
    receiver_ccip_address: str = Field(
        default="",
        description="CCIP receiver contract on L1 that unpacks signed envelopes",
    )
    sender_ccip_address: str = Field(
        default="",
        description="CCIP sender contract on L2 that accepts sendMessagePayNative",
    )
    eigen_agent_version: str = Field(
        default="v1.0.0",
        description="EigenAgent contract version; the major part is the EIP-712 domain version",
    )

    # Delegation approvals
    operator_keys: List[str] = Field(
        default_factory=list,
        description="Operator private keys allowed to sign delegation approvals",
    )
    delegation_expiry_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        description="Lifetime of a delegation approval signature",
    )

    # Runtime
    status_reconciler_enabled: bool = Field(
        default=True,
        description="Run the pending transaction poller inside the API process",
    )
    status_poll_interval_seconds: float = Field(
        default=20.0,
        description="Interval between pending transaction reconciliation passes",
    )
    runtime_tick_timeout_seconds: int = Field(
        default=120,
        description="Upper bound for a single strategy tick",
    )
    runtime_max_concurrency: int = Field(
        default=2,
        description="Maximum strategy ticks running at once",
    )


settings = Settings()
