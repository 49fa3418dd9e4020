"""Account balance reads with a last-known fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from ..core.errors import BalanceUnavailable
from ..providers.base import LedgerClient
from .units import from_base_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceAmount:
    """SOL balance. ``is_authoritative`` is False for the unknown sentinel."""

    value: Decimal
    base_units: Optional[int] = None
    is_authoritative: bool = True
    observed_at: Optional[datetime] = None

    @classmethod
    def unknown(cls) -> "BalanceAmount":
        return cls(value=Decimal(0), base_units=None, is_authoritative=False, observed_at=None)

    @classmethod
    def from_base_units(cls, lamports: int) -> "BalanceAmount":
        return cls(
            value=from_base_units(lamports),
            base_units=lamports,
            is_authoritative=True,
            observed_at=datetime.now(timezone.utc),
        )

    @property
    def formatted(self) -> str:
        return f"{self.value:.4f}"


class BalanceTracker:
    """Reads the wallet balance from the ledger client and keeps the last good reading."""

    def __init__(self, ledger: LedgerClient):
        self._ledger = ledger
        self._last_known: Dict[str, BalanceAmount] = {}

    def last_known(self, public_address: str) -> Optional[BalanceAmount]:
        return self._last_known.get(public_address)

    async def refresh(self, public_address: str) -> BalanceAmount:
        """
        Fetch the current balance.

        Raises: BalanceUnavailable if the ledger read fails; its ``fallback``
        is the last known balance or ``BalanceAmount.unknown()``.
        """
        try:
            lamports = await self._ledger.get_balance(public_address)
        except Exception as exc:  # noqa: BLE001
            fallback = self._last_known.get(public_address) or BalanceAmount.unknown()
            logger.warning("Balance refresh for %s failed: %s", public_address, exc)
            raise BalanceUnavailable(public_address, fallback, cause=exc) from exc

        amount = BalanceAmount.from_base_units(lamports)
        self._last_known[public_address] = amount
        return amount
