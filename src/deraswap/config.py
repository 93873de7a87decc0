"""Application configuration using pydantic-settings.

Covers the Hedera network endpoints, the router/adapter contracts that take
part in a swap, route safety limits and the transaction monitor schedule.
"""

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")
    dry_run: bool = Field(
        default=True, description="Use the simulated wallet session (no real transactions)"
    )

    # ======================
    # Network
    # ======================
    hedera_network: str = Field(default="mainnet", description="mainnet or testnet")
    mirror_node_url: str = Field(
        default="https://mainnet.mirrornode.hedera.com",
        description="Mirror node REST base URL",
    )
    quote_api_url: str = Field(
        default="https://api.etaswap.com/v1", description="Route quote service base URL"
    )
    http_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")

    # ======================
    # Contracts
    # ======================
    router_contract_id: str = Field(
        default="0.0.4817907", description="Swap router (exchange) contract ID"
    )
    adapter_contract_ids: str = Field(
        default="0.0.10087392",
        description="Comma-separated aggregator adapter contract IDs",
    )
    wrapped_native_token_id: str = Field(
        default="0.0.1456986", description="Wrapped HBAR (WHBAR) token ID"
    )

    # ======================
    # Route Safety
    # ======================
    trusted_aggregators: str = Field(
        default=(
            "SaucerSwap,SaucerSwapV1,SaucerSwapV1_v2,SaucerSwapV2,SaucerSwapV2_V8,"
            "SaucerSwapV2_V9,SaucerSwapV2_V10,SaucerSwapV2_V12,SaucerSwapV2_EXACT2,"
            "Pangolin,HeliSwap,ETASwap"
        ),
        description="Comma-separated aggregator IDs allowed to route swaps",
    )
    blocked_tokens: str = Field(
        default="", description="Comma-separated token IDs or addresses never to route through"
    )
    trusted_tokens: str = Field(
        default="0.0.1456986,0.0.456858,0.0.731861,0.0.1449990,0.0.1495261",
        description="Comma-separated token IDs known to exist (skip catalog lookup)",
    )
    max_hops: int = Field(default=3, description="Maximum hops per route leg")
    max_price_impact: Decimal = Field(
        default=Decimal("20"), description="Maximum absolute price impact (percent)"
    )

    # ======================
    # Transaction Monitor
    # ======================
    monitor_initial_delay: float = Field(
        default=4.0, description="Seconds to wait before the first mirror node query"
    )
    monitor_initial_interval: float = Field(default=2.0, description="First poll interval")
    monitor_backoff_multiplier: float = Field(default=1.4, description="Poll interval growth")
    monitor_max_interval: float = Field(default=8.0, description="Poll interval cap")
    monitor_max_attempts: int = Field(default=12, description="Polls before giving up")

    # ======================
    # Preconditions
    # ======================
    precondition_settle_seconds: float = Field(
        default=2.0, description="Wait after a confirmed association/approval"
    )
    association_cache_size: int = Field(
        default=1024, description="Max token IDs remembered as associated"
    )
    association_cache_ttl: float = Field(
        default=3600.0, description="Seconds an association confirmation stays cached"
    )

    @property
    def adapter_ids(self) -> list[str]:
        """Parse adapter contract IDs into a list."""
        return _split_csv(self.adapter_contract_ids)

    @property
    def trusted_aggregator_ids(self) -> list[str]:
        return _split_csv(self.trusted_aggregators)

    @property
    def blocked_token_ids(self) -> list[str]:
        return _split_csv(self.blocked_tokens)

    @property
    def trusted_token_ids(self) -> list[str]:
        return _split_csv(self.trusted_tokens)

    @property
    def is_mainnet(self) -> bool:
        return self.hedera_network.lower() == "mainnet"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict suitable for logging."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "network": {
                "hedera": self.hedera_network,
                "mirror_node": self.mirror_node_url,
                "quote_api": self.quote_api_url,
            },
            "contracts": {
                "router": self.router_contract_id,
                "adapters": self.adapter_ids,
                "wrapped_native": self.wrapped_native_token_id,
            },
            "safety": {
                "trusted_aggregators": len(self.trusted_aggregator_ids),
                "blocked_tokens": len(self.blocked_token_ids),
                "max_hops": self.max_hops,
                "max_price_impact": str(self.max_price_impact),
            },
            "monitor": {
                "initial_delay": self.monitor_initial_delay,
                "max_attempts": self.monitor_max_attempts,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging for the engine."""
    settings = settings or get_settings()
    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
