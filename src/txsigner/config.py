"""
Configuration management for the transaction signer.

Supports configuration via environment variables and .env files.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SignerConfig(BaseSettings):
    """
    Configuration settings for the transaction signer.

    All settings can be configured via environment variables with the TXSIGNER_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TXSIGNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Signing provider settings
    wallet_rpc_url: str = Field(
        default="http://localhost:8545",
        description="JSON-RPC endpoint of the wallet that signs and sends transactions"
    )
    rpc_url: Optional[str] = Field(
        default=None,
        description="Read-only JSON-RPC endpoint for account queries (wallet endpoint if unset)"
    )
    chain_id: Optional[int] = Field(
        default=None,
        ge=1,
        description="Expected chain ID, added to transactions that do not carry one"
    )

    # Signing panel behaviour
    close_delay_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Grace period before a signed panel closes itself"
    )

    # Receipt tracking
    receipt_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Maximum time to wait for a receipt (unbounded if unset)"
    )
    receipt_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Delay between receipt polls"
    )

    # Activity persistence
    database_url: str = Field(
        default="sqlite+aiosqlite:///activity.db",
        description="SQLAlchemy database URL for the activity ledger"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    @property
    def query_rpc_url(self) -> str:
        """Get the endpoint used for read-only account queries."""
        return self.rpc_url or self.wallet_rpc_url


# Global config instance
_config: Optional[SignerConfig] = None


def get_config() -> SignerConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = SignerConfig()
    return _config


def set_config(config: SignerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
