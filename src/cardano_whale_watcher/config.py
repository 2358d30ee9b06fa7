import os
from dataclasses import dataclass, field
from typing import Optional, FrozenSet
from dotenv import load_dotenv

from .exceptions import ConfigError

# Load environment variables from .env file
load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    # API Keys
    blockfrost_api_key: str
    coingecko_api_key: Optional[str] = None

    # API URLs
    blockfrost_base_url: str = "https://cardano-mainnet.blockfrost.io/api/v0"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    request_timeout: float = 15.0
    price_timeout: float = 8.0
    handle_timeout: float = 5.0

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    # Scheduler settings
    update_interval: float = 45.0  # seconds between whale refreshes
    initial_delay: float = 2.0
    shutdown_timeout: float = 5.0

    # Analysis settings
    stale_after_minutes: float = 5.0
    whale_threshold_ada: float = 50000.0
    blocks_to_scan: int = 5
    max_txs_to_check: int = 50
    snapshot_size: int = 10
    wallet_history_size: int = 20
    fallback_price: float = 0.47
    exchange_addresses: FrozenSet[str] = field(default_factory=frozenset)

    rate_limit_delay: float = 0.1  # seconds between API calls

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        blockfrost_key = os.getenv("BLOCKFROST_API_KEY")
        if not blockfrost_key:
            raise ConfigError(
                "BLOCKFROST_API_KEY environment variable is required")

        exchanges = os.getenv("EXCHANGE_ADDRESSES", "")

        return cls(
            blockfrost_api_key=blockfrost_key,
            coingecko_api_key=os.getenv("COINGECKO_API_KEY") or None,
            blockfrost_base_url=os.getenv(
                "BLOCKFROST_BASE_URL", cls.blockfrost_base_url),
            coingecko_base_url=os.getenv(
                "COINGECKO_BASE_URL", cls.coingecko_base_url),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "15")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            update_interval=float(os.getenv("UPDATE_INTERVAL", "45")),
            initial_delay=float(os.getenv("INITIAL_DELAY", "2")),
            shutdown_timeout=float(os.getenv("SHUTDOWN_TIMEOUT", "5")),
            stale_after_minutes=float(os.getenv("STALE_AFTER_MINUTES", "5")),
            whale_threshold_ada=float(
                os.getenv("WHALE_THRESHOLD_ADA", "50000")),
            blocks_to_scan=int(os.getenv("BLOCKS_TO_SCAN", "5")),
            max_txs_to_check=int(os.getenv("MAX_TXS_TO_CHECK", "50")),
            snapshot_size=int(os.getenv("SNAPSHOT_SIZE", "10")),
            wallet_history_size=int(os.getenv("WALLET_HISTORY_SIZE", "20")),
            fallback_price=float(os.getenv("FALLBACK_PRICE", "0.47")),
            exchange_addresses=frozenset(
                addr.strip() for addr in exchanges.split(",") if addr.strip()),
            rate_limit_delay=float(os.getenv("RATE_LIMIT_DELAY", "0.1")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
