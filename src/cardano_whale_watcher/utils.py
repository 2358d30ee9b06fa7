"""
Utility functions for validation, unit conversion and transaction parsing.
"""

from typing import List, Dict, Any, Optional, Iterable
from datetime import datetime, timezone
from decimal import Decimal
import re
import logging

from .models import TransactionRecord

# Set up logging
logger = logging.getLogger(__name__)

LOVELACE_PER_ADA = Decimal("1000000")

ADDRESS_PREFIX = "addr1"
ADDRESS_MIN_LENGTH = 50
ADDRESS_MAX_LENGTH = 120
HANDLE_MAX_LENGTH = 15

_ADDRESS_RE = re.compile(r'^addr1[a-z0-9]+$')
_HANDLE_RE = re.compile(r'^[a-zA-Z0-9_-]+$')


def is_valid_address(address: Any) -> bool:
    """Check if a string is a valid Cardano (Shelley) payment address."""
    return (
        isinstance(address, str) and
        address.startswith(ADDRESS_PREFIX) and
        ADDRESS_MIN_LENGTH <= len(address) <= ADDRESS_MAX_LENGTH and
        bool(_ADDRESS_RE.match(address))
    )


def is_valid_handle(value: Any) -> bool:
    """Check if a string looks like an ADA handle, with or without the leading '$'."""
    if not value or not isinstance(value, str):
        return False

    bare = value[1:] if value.startswith('$') else value

    return (
        1 <= len(bare) <= HANDLE_MAX_LENGTH and
        bool(_HANDLE_RE.match(bare)) and
        not value.startswith(ADDRESS_PREFIX)
    )


def normalize_handle(value: str) -> str:
    """Strip the '$' marker and lower-case a handle."""
    value = value.strip()
    if value.startswith('$'):
        value = value[1:]
    return value.lower()


def lovelace_to_ada(lovelace: Any) -> float:
    """Convert lovelace to ADA."""
    try:
        return float(Decimal(str(lovelace)) / LOVELACE_PER_ADA)
    except (ArithmeticError, ValueError, TypeError) as e:
        logger.warning(f"Error converting lovelace to ADA: {lovelace}, error: {e}")
        return 0.0


def lovelace_quantity(amounts: Iterable[Dict[str, Any]]) -> int:
    """Pick the lovelace quantity out of a Blockfrost amount list."""
    for entry in amounts or []:
        if entry.get("unit") == "lovelace":
            return int(entry.get("quantity", 0))
    return 0


def confidence_label(amount: float) -> str:
    if amount > 1_000_000:
        return "Very High"
    if amount > 500_000:
        return "High"
    return "Medium"


def classify_whale_direction(utxos: Dict[str, Any],
                             exchange_addresses: Iterable[str] = ()) -> str:
    """
    Label a whale transaction as 'buy' or 'sell' from its UTXO flow.

    Funds leaving a known exchange are a withdrawal (buy); the largest output
    landing on a known exchange is a deposit (sell). Without exchange labels,
    consolidating many inputs into fewer outputs counts as accumulation (buy)
    and anything else as distribution (sell).
    """
    exchanges = set(exchange_addresses)
    inputs = utxos.get("inputs") or []
    outputs = utxos.get("outputs") or []

    if exchanges:
        if any(i.get("address") in exchanges for i in inputs):
            return "buy"
        if outputs:
            largest = max(outputs, key=lambda o: lovelace_quantity(o.get("amount")))
            if largest.get("address") in exchanges:
                return "sell"

    return "buy" if len(inputs) > len(outputs) else "sell"


def net_change_for(address: str, utxos: Dict[str, Any]) -> int:
    """Lovelace received by an address minus lovelace it spent in one transaction."""
    change = 0
    for utxo in utxos.get("inputs") or []:
        if utxo.get("address") == address:
            change -= lovelace_quantity(utxo.get("amount"))
    for utxo in utxos.get("outputs") or []:
        if utxo.get("address") == address:
            change += lovelace_quantity(utxo.get("amount"))
    return change


def block_time(tx: Dict[str, Any]) -> datetime:
    return datetime.fromtimestamp(int(tx.get("block_time", 0)), tz=timezone.utc)


def parse_whale_transaction(tx_hash: str, tx: Dict[str, Any], utxos: Dict[str, Any],
                            threshold_ada: float,
                            exchange_addresses: Iterable[str] = ()) -> Optional[TransactionRecord]:
    """Build a whale record from raw Blockfrost data, or None if below the threshold."""
    try:
        amount = lovelace_to_ada(lovelace_quantity(tx["output_amount"]))
        if amount < threshold_ada:
            return None

        return TransactionRecord(
            hash=tx_hash,
            amount=amount,
            direction=classify_whale_direction(utxos, exchange_addresses),
            timestamp=block_time(tx),
            block=str(tx.get("block", "")),
            fees=lovelace_to_ada(tx.get("fees", 0)),
            confidence=confidence_label(amount),
            size=tx.get("size"),
        )
    except (ValueError, KeyError, TypeError, IndexError) as e:
        logger.warning(f"Error parsing whale transaction {tx_hash}: {e}")
        return None


def parse_wallet_transaction(address: str, tx_hash: str, tx: Dict[str, Any],
                             utxos: Dict[str, Any]) -> Optional[TransactionRecord]:
    """Build a wallet record, dropping dust movements under 1 ADA."""
    try:
        ada_change = lovelace_to_ada(net_change_for(address, utxos))
        if abs(ada_change) < 1:
            return None

        return TransactionRecord(
            hash=tx_hash,
            amount=abs(ada_change),
            direction="receive" if ada_change > 0 else "send",
            timestamp=block_time(tx),
            block=str(tx.get("block", "")),
            fees=lovelace_to_ada(tx.get("fees", 0)),
            net_change=ada_change,
        )
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Error parsing wallet transaction {tx_hash}: {e}")
        return None


def newest_first(transactions: List[TransactionRecord]) -> List[TransactionRecord]:
    return sorted(transactions, key=lambda tx: tx.timestamp, reverse=True)


def format_ada(amount: float, decimals: int = 2) -> str:
    """Format an ADA amount with K/M suffixes."""
    try:
        num = float(amount)

        if num >= 1_000_000:
            return f"{num / 1_000_000:.{decimals}f}M ADA"
        elif num >= 1_000:
            return f"{num / 1_000:.1f}K ADA"
        else:
            return f"{num:,.{decimals}f} ADA"
    except (ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Error formatting amount {amount}: {e}")
        return f"{amount} ADA"


def short_address(address: str) -> str:
    return f"{address[:12]}...{address[-6:]}" if len(address) > 20 else address
