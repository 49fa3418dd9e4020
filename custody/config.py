import os

from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the legacy Coingecko key variable when the primary one is unset."""

        super().model_post_init(__context)

        if not self.coingecko_api_key:
            fallback = os.getenv("CG_API_KEY")
            if fallback:
                object.__setattr__(self, "coingecko_api_key", fallback)

    log_level: str = Field(default="INFO", description="Logging level")

    # Solana ledger
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Solana JSON-RPC endpoint",
        validation_alias=AliasChoices("solana_rpc_url", "SOLANA_RPC_URL", "RPC_URL"),
    )
    solana_commitment: str = Field(default="confirmed", description="Commitment level for reads and confirmations")
    solana_skip_preflight: bool = Field(default=True, description="Skip preflight simulation on sendTransaction")
    rpc_timeout_seconds: float = Field(default=30.0, description="HTTP timeout for ledger RPC calls")
    rpc_max_retries: int = Field(default=3, ge=1, description="Attempts for idempotent ledger reads")

    # Transfer confirmation
    confirmation_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Max seconds to wait for a submitted transfer to confirm",
    )
    confirmation_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Delay between confirmation status polls",
    )

    # Price feed
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3", description="Coingecko API base URL")
    coingecko_api_key: str = Field(default="", description="Coingecko API key")
    rate_asset_id: str = Field(default="solana", description="Coingecko id of the ledger's native asset")
    rate_vs_currency: str = Field(default="usd", description="Currency the feed quotes the asset in")
    rate_fiat_multiplier: Decimal = Field(
        default=Decimal("1500"),
        description="Display fiat units per feed currency unit (NGN per USD)",
    )
    rate_poll_interval_ms: int = Field(default=10_000, ge=100, description="Rate poll interval in milliseconds")
    rate_timeout_seconds: float = Field(default=3.0, gt=0, description="Bounded timeout for a single rate fetch")

    # Authentication
    auth_prompt: str = Field(default="Unlock NairCrypto", description="Message shown by the platform auth prompt")

    # Key derivation (Argon2id) for the wallet secret
    kdf_opslimit: int = Field(default=2, ge=1, description="Argon2id ops limit")
    kdf_memlimit: int = Field(default=64 * 1024 * 1024, ge=8192, description="Argon2id memory limit in bytes")

    @property
    def has_coingecko_key(self) -> bool:
        return bool(self.coingecko_api_key)


# Global settings instance
settings = Settings()
