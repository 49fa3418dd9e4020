"""
Transfer Execution Layer

- TransactionEngine: validate, authenticate, sign, submit, confirm
- TransactionBuilder: builds and signs SystemProgram transfers
- ConfirmationStatus: Pending / Confirmed(tx_id) / Failed(reason)

Usage:
    from custody.core.execution import TransactionEngine

    engine = TransactionEngine(ledger, vault, auth_gate)
    status = await engine.send(request)
    if status.is_confirmed:
        print(status.transaction_id)
"""

from .models import (
    ConfirmationState,
    ConfirmationStatus,
    SignedTransfer,
    TIMEOUT_REASON,
)
from .tx_builder import TransactionBuilder
from .engine import TransactionEngine

__all__ = [
    "ConfirmationState",
    "ConfirmationStatus",
    "SignedTransfer",
    "TIMEOUT_REASON",
    "TransactionBuilder",
    "TransactionEngine",
]
