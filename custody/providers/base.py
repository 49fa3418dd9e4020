from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class LedgerTxState(str, Enum):
    """Status of a transaction as seen by the ledger node."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class LedgerTxStatus:
    """One confirmation-status reading from the ledger client."""
    state: LedgerTxState
    slot: Optional[int] = None
    confirmations: Optional[int] = None
    error: Optional[str] = None


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class LedgerClient(Provider):
    """Ledger network client. Reads are idempotent, submissions are not."""

    @abstractmethod
    async def get_latest_blockhash(self) -> str:
        """Recent blockhash to anchor a new transaction"""
        pass

    @abstractmethod
    async def submit_transaction(self, signed_transaction: bytes) -> str:
        """Submit a signed transaction once and return its id"""
        pass

    @abstractmethod
    async def get_confirmation_status(self, transaction_id: str) -> LedgerTxStatus:
        """Current confirmation status of a submitted transaction"""
        pass

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Native balance in base units"""
        pass


class PriceProvider(Provider):
    """Provider for the native asset's price"""

    @abstractmethod
    async def get_asset_price(self) -> Decimal:
        """Current price of the native asset in the feed currency"""
        pass
