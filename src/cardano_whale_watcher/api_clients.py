import time
import logging
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
import requests

from .config import Config
from .exceptions import UpstreamError
from .models import TransactionRecord, WalletInfo
from .utils import (
    lovelace_to_ada,
    lovelace_quantity,
    newest_first,
    parse_whale_transaction,
    parse_wallet_transaction,
)

# Set up logging
logger = logging.getLogger(__name__)


class BlockfrostClient:
    """Client for the Blockfrost Cardano API."""

    def __init__(self, config: Config):
        self.config = config
        self.base_url = config.blockfrost_base_url.rstrip("/")
        self.api_key = config.blockfrost_api_key

    def _make_request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make a request to Blockfrost API."""
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = {"project_id": self.api_key}

        try:
            response = requests.get(url, params=params or {}, headers=headers,
                                    timeout=self.config.request_timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamError(f"Blockfrost API error on {endpoint}: {e}") from e

        # Rate limiting
        if self.config.rate_limit_delay:
            time.sleep(self.config.rate_limit_delay)

        return data

    def get_latest_block(self) -> Dict[str, Any]:
        return self._make_request("blocks/latest")

    def get_block_transactions(self, block_hash: str) -> List[str]:
        return self._make_request(f"blocks/{block_hash}/txs")

    def get_transaction(self, tx_hash: str) -> Dict[str, Any]:
        return self._make_request(f"txs/{tx_hash}")

    def get_transaction_utxos(self, tx_hash: str) -> Dict[str, Any]:
        return self._make_request(f"txs/{tx_hash}/utxos")

    def _recent_transaction_hashes(self) -> List[str]:
        """Collect transaction hashes from the latest block and its predecessors."""
        latest = self.get_latest_block()
        logger.info(f"Latest block: {latest.get('slot')}")

        hashes = list(self.get_block_transactions(latest["hash"]))

        current_hash = latest.get("previous_block")
        for i in range(self.config.blocks_to_scan - 1):
            if not current_hash:
                break
            try:
                block = self._make_request(f"blocks/{current_hash}")
                hashes.extend(self.get_block_transactions(current_hash))
                current_hash = block.get("previous_block")
            except UpstreamError as e:
                logger.warning(f"Couldn't fetch block {i + 1}: {e}")
                break

        return hashes

    def get_whale_transactions(self) -> List[TransactionRecord]:
        """Scan recent blocks for transactions above the whale threshold."""
        tx_hashes = self._recent_transaction_hashes()
        to_check = tx_hashes[:self.config.max_txs_to_check]
        logger.info(
            f"Checking {len(to_check)} of {len(tx_hashes)} recent transactions")

        whales = []
        for tx_hash in to_check:
            try:
                tx = self.get_transaction(tx_hash)
                if lovelace_to_ada(lovelace_quantity(tx.get("output_amount"))) < self.config.whale_threshold_ada:
                    continue
                utxos = self.get_transaction_utxos(tx_hash)
            except (UpstreamError, ValueError, TypeError) as e:
                logger.warning(f"Skipping transaction {tx_hash}: {e}")
                continue

            record = parse_whale_transaction(
                tx_hash, tx, utxos,
                self.config.whale_threshold_ada,
                self.config.exchange_addresses,
            )
            if record:
                whales.append(record)

        logger.info(
            f"Found {len(whales)} whale transactions from {len(to_check)} checked")
        return newest_first(whales)

    def get_wallet_info(self, address: str) -> WalletInfo:
        """Get balance and account details for an address."""
        data = self._make_request(f"addresses/{address}")

        return WalletInfo(
            address=data.get("address", address),
            balance=lovelace_to_ada(lovelace_quantity(data.get("amount"))),
            tx_count=int(data.get("tx_count") or 0),
            account_type=data.get("type", "shelley"),
            script=bool(data.get("script", False)),
            stake_address=data.get("stake_address"),
        )

    def get_wallet_transactions(self, address: str, page: int = 1,
                                count: int = 20) -> List[TransactionRecord]:
        """Get one page of an address's history, newest first."""
        params = {"count": count, "page": page, "order": "desc"}
        tx_hashes = self._make_request(f"addresses/{address}/txs", params)

        transactions = []
        for tx_hash in tx_hashes:
            try:
                tx = self.get_transaction(tx_hash)
                utxos = self.get_transaction_utxos(tx_hash)
            except UpstreamError as e:
                logger.warning(f"Skipping transaction {tx_hash}: {e}")
                continue

            record = parse_wallet_transaction(address, tx_hash, tx, utxos)
            if record:
                transactions.append(record)

        return newest_first(transactions)


class CoinGeckoClient:
    """Client for CoinGecko API."""

    def __init__(self, config: Config):
        self.config = config
        self.base_url = config.coingecko_base_url.rstrip("/")
        self.api_key = config.coingecko_api_key

    def _make_request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make a request to CoinGecko API."""
        url = f"{self.base_url}/{endpoint}"
        headers = {}

        if self.api_key:
            headers["x-cg-pro-api-key"] = self.api_key

        if params is None:
            params = {}

        try:
            response = requests.get(url, params=params, headers=headers,
                                    timeout=self.config.price_timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamError(f"CoinGecko API error on {endpoint}: {e}") from e

    def get_ada_price(self) -> Dict[str, Any]:
        """Get the current ADA/USD spot price and 24h change."""
        data = self._make_request("simple/price", {
            "ids": "cardano",
            "vs_currencies": "usd",
            "include_24hr_change": "true",
        })

        cardano = data.get("cardano") or {}
        if "usd" not in cardano:
            raise UpstreamError("CoinGecko response is missing the cardano price")

        return {
            "price": float(cardano["usd"]),
            "change24h": cardano.get("usd_24h_change"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
