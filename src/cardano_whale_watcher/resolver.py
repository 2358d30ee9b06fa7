"""
Resolution of user input (raw address or $handle) to a Cardano address.
"""

import asyncio
import logging
from typing import Optional, List, Dict, Any, Sequence

import requests

from .models import ResolutionResult
from .utils import is_valid_address, is_valid_handle, normalize_handle

logger = logging.getLogger(__name__)

INVALID_FORMAT_ERROR = "Invalid format. Use Cardano address (addr1...) or handle ($alice)"

POPULAR_HANDLES = [
    {"input": "$charles", "nickname": "Charles Hoskinson"},
    {"input": "$iohk", "nickname": "IOHK Official"},
    {"input": "$emurgo", "nickname": "Emurgo"},
    {"input": "$minswap", "nickname": "MinSwap DEX"},
]


class HandleService:
    """A directory service that maps a bare handle to an address."""

    name = "unknown"

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def _get(self, url: str) -> Dict[str, Any]:
        response = requests.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def attempt_resolve(self, handle: str) -> Optional[str]:
        raise NotImplementedError


class HandleMeService(HandleService):
    name = "handle.me"
    base_url = "https://api.handle.me"

    def attempt_resolve(self, handle: str) -> Optional[str]:
        data = self._get(f"{self.base_url}/handles/{handle}")
        return (data.get("resolved_addresses") or {}).get("ada")


class AdaHandleService(HandleService):
    name = "adahandle.com"
    base_url = "https://api.adahandle.com"

    def attempt_resolve(self, handle: str) -> Optional[str]:
        data = self._get(f"{self.base_url}/handles/{handle}")
        return data.get("address")


def default_services(timeout: float = 5.0) -> List[HandleService]:
    return [HandleMeService(timeout), AdaHandleService(timeout)]


class AddressResolver:
    """Resolve input through an ordered chain of handle services; first valid answer wins."""

    def __init__(self, services: Optional[Sequence[HandleService]] = None):
        self.services = list(services) if services is not None else default_services()

    async def resolve(self, value: str) -> ResolutionResult:
        trimmed = (value or "").strip()

        if is_valid_address(trimmed):
            return ResolutionResult(
                success=True,
                kind="address",
                address=trimmed,
                default_name=f"Wallet {trimmed[:8]}",
                source="direct",
            )

        if not is_valid_handle(trimmed):
            return ResolutionResult(success=False, error=INVALID_FORMAT_ERROR)

        handle = normalize_handle(trimmed)

        for service in self.services:
            logger.info(f"Trying {service.name} for handle: {handle}")
            try:
                address = await asyncio.to_thread(service.attempt_resolve, handle)
            except Exception as e:
                logger.warning(f"{service.name} failed for {handle}: {e}")
                continue

            if address and is_valid_address(address):
                return ResolutionResult(
                    success=True,
                    kind="handle",
                    address=address,
                    handle=f"${handle}",
                    default_name=f"${handle}",
                    source=service.name,
                )

            logger.info(f"{service.name} returned no valid address for {handle}")

        return ResolutionResult(
            success=False,
            error=f'Handle "{trimmed}" not found or unable to resolve',
        )


def popular_handles() -> List[Dict[str, str]]:
    return [dict(entry) for entry in POPULAR_HANDLES]
