"""
Transfer execution models and types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ConfirmationState(str, Enum):
    """Outcome of a transfer as reported to the caller."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class ConfirmationStatus:
    """Pending, Confirmed(tx_id) or Failed(reason)."""
    state: ConfirmationState
    transaction_id: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def pending(cls, transaction_id: Optional[str] = None) -> "ConfirmationStatus":
        return cls(ConfirmationState.PENDING, transaction_id=transaction_id)

    @classmethod
    def confirmed(cls, transaction_id: str) -> "ConfirmationStatus":
        return cls(ConfirmationState.CONFIRMED, transaction_id=transaction_id)

    @classmethod
    def failed(cls, reason: str, transaction_id: Optional[str] = None) -> "ConfirmationStatus":
        return cls(ConfirmationState.FAILED, transaction_id=transaction_id, reason=reason)

    @property
    def is_confirmed(self) -> bool:
        return self.state == ConfirmationState.CONFIRMED

    @property
    def is_failed(self) -> bool:
        return self.state == ConfirmationState.FAILED


TIMEOUT_REASON = "timeout"


@dataclass
class SignedTransfer:
    """A signed SOL transfer ready for submission."""
    transaction_id: str              # base58 fee-payer signature
    raw_transaction: bytes = field(repr=False)
    from_address: str = ""
    to_address: str = ""
    lamports: int = 0
    recent_blockhash: str = ""
