"""Token and NFT allocation clients.

The token service is an opaque capability: every call reports success or
failure through an ``AllocationOutcome`` and never raises for remote errors.
"""
import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

import aiohttp
from aiohttp import ClientError, ClientTimeout

from quizduel.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationOutcome:
    success: bool
    transaction_ref: Optional[str] = None
    error: Optional[str] = None


class TokenAllocator(ABC):
    """Capability for crediting tokens and minting reward NFTs."""

    @abstractmethod
    async def allocate(
        self,
        player_id: UUID,
        payout_address: str,
        amount: int,
        reason: str,
    ) -> AllocationOutcome:
        ...

    @abstractmethod
    async def mint_nft(
        self,
        player_id: UUID,
        payout_address: str,
        metadata: dict[str, Any],
    ) -> AllocationOutcome:
        ...

    async def close(self) -> None:
        return None


class SimulatedTokenAllocator(TokenAllocator):
    """Allocator used when no token service is configured.

    Every call succeeds with a random 0x-prefixed transaction hash.
    """

    @staticmethod
    def _transaction_hash() -> str:
        return "0x" + secrets.token_hex(32)

    async def allocate(self, player_id, payout_address, amount, reason):
        tx_hash = self._transaction_hash()
        logger.info(f"Simulated token allocation: {amount} to {player_id} ({reason}) tx={tx_hash}")
        return AllocationOutcome(success=True, transaction_ref=tx_hash)

    async def mint_nft(self, player_id, payout_address, metadata):
        tx_hash = self._transaction_hash()
        logger.info(f"Simulated NFT mint for {player_id}: {metadata.get('name')} tx={tx_hash}")
        return AllocationOutcome(success=True, transaction_ref=tx_hash)


class HttpTokenAllocator(TokenAllocator):
    """
    Client for the remote token service.

    Session is created lazily on first use and should be closed on shutdown.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout_seconds: int = 30):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=headers)
            logger.debug("Created new aiohttp session for token service client")

    async def close(self):
        """Close the underlying aiohttp client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed aiohttp session for token service client")
            self._session = None

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> AllocationOutcome:
        await self._ensure_session()
        url = f"{self.base_url}{endpoint}"

        try:
            async with self._session.post(url, json=payload) as response:
                if response.status in (200, 201):
                    data = await response.json()
                    return AllocationOutcome(
                        success=bool(data.get("success", True)),
                        transaction_ref=data.get("transaction_hash") or data.get("transaction_ref"),
                        error=data.get("error"),
                    )
                error_text = await response.text()
                logger.error(f"Token service error {response.status} for {endpoint}: {error_text}")
                return AllocationOutcome(success=False, error=f"Token service error: {response.status}")
        except asyncio.TimeoutError:
            logger.error(f"Token service timeout for {endpoint}")
            return AllocationOutcome(success=False, error="Token service timeout")
        except ClientError as e:
            logger.error(f"Token service client error for {endpoint}: {e}")
            return AllocationOutcome(success=False, error="Token service unavailable")

    async def allocate(self, player_id, payout_address, amount, reason):
        return await self._post("/tokens/allocate", {
            "player_id": str(player_id),
            "wallet_address": payout_address,
            "amount": amount,
            "reason": reason,
        })

    async def mint_nft(self, player_id, payout_address, metadata):
        return await self._post("/nfts/mint", {
            "player_id": str(player_id),
            "wallet_address": payout_address,
            "metadata": metadata,
        })


_allocator: Optional[TokenAllocator] = None


def get_token_allocator() -> TokenAllocator:
    """Process-wide allocator chosen from settings."""
    global _allocator
    if _allocator is None:
        settings = get_settings()
        if settings.token_service_url:
            _allocator = HttpTokenAllocator(
                settings.token_service_url,
                settings.token_service_api_key,
                settings.token_service_timeout_seconds,
            )
            logger.info("Using remote token service for reward allocation")
        else:
            _allocator = SimulatedTokenAllocator()
            logger.info("Using simulated token allocator (TOKEN_SERVICE_URL not set)")
    return _allocator


async def close_token_allocator() -> None:
    global _allocator
    if _allocator is not None:
        await _allocator.close()
        _allocator = None
