"""
Error Classification

Defines the error taxonomy of the custody core.

Errors are either soft (the caller degrades to a cached or sentinel value,
e.g. balance and rate reads) or terminal for the current operation
(validation, authentication, decryption, submission). No error message
ever carries key material.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for caller decisions."""

    KEY_GENERATION = "key_generation"
    DECRYPTION = "decryption"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SUBMISSION = "submission"
    PROVIDER = "provider"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = False
    suggested_action: Optional[str] = None
    provider: Optional[str] = None
    tx_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class CustodyError(Exception):
    """Base class for every error raised by the custody core."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = False

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(category=self.category, recoverable=self.recoverable)


class KeyGenError(CustodyError):
    """Keypair generation or secret encryption failed; nothing was persisted."""

    category = ErrorCategory.KEY_GENERATION


class DecryptionError(CustodyError):
    """Encrypted secret is malformed, tampered with, or the passphrase is wrong."""

    category = ErrorCategory.DECRYPTION


class AuthError(CustodyError):
    """Platform authentication declined, cancelled, or unavailable."""

    category = ErrorCategory.AUTHENTICATION

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message,
            context=ErrorContext(
                category=ErrorCategory.AUTHENTICATION,
                suggested_action="Authenticate again to continue",
            ),
        )


class ValidationError(CustodyError):
    """Malformed transfer input. Raised before any network call."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(
            message,
            context=ErrorContext(
                category=ErrorCategory.VALIDATION,
                details={"field": field_name} if field_name else {},
            ),
        )
        self.field_name = field_name


class AmountTooSmallError(ValidationError):
    """Amount rounds down to zero base units."""

    def __init__(self, amount: Decimal):
        super().__init__(f"Amount {amount} is below the smallest transferable unit", field_name="amount")
        self.amount = amount


class SubmissionError(CustodyError):
    """
    Ledger rejected the transaction or the submission request failed.

    Never retried automatically: the transfer may already have been accepted,
    so the caller decides whether to build a fresh transaction.
    """

    category = ErrorCategory.SUBMISSION

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        context = classify_error(cause) if cause is not None else ErrorContext(category=ErrorCategory.SUBMISSION)
        context.recoverable = False
        context.suggested_action = "Check the balance and recipient before sending a new transfer"
        super().__init__(message, context=context)


class ConfirmationTimeoutError(CustodyError):
    """Submitted transaction did not reach the target commitment in time."""

    category = ErrorCategory.TIMEOUT

    def __init__(self, tx_id: str, timeout_s: float):
        super().__init__(
            f"Transaction {tx_id} not confirmed after {timeout_s}s",
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                tx_id=tx_id,
                suggested_action="Check the transaction status before sending again",
            ),
        )
        self.tx_id = tx_id


class BalanceUnavailable(CustodyError):
    """
    Balance could not be read.

    ``fallback`` holds the last known balance, or the unknown sentinel, so
    the caller can keep displaying something without treating it as current.
    """

    category = ErrorCategory.NETWORK
    recoverable = True

    def __init__(self, address: str, fallback: Any, cause: Optional[BaseException] = None):
        super().__init__(f"Balance unavailable for {address}", context=classify_error(cause) if cause else None)
        self.address = address
        self.fallback = fallback


class RateUnavailable(CustodyError):
    """Price feed returned nothing usable."""

    category = ErrorCategory.PROVIDER
    recoverable = True


class LedgerRpcError(CustodyError):
    """Ledger node returned an error or an unexpected payload."""

    category = ErrorCategory.PROVIDER
    recoverable = True

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


def classify_error(error: Optional[BaseException]) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Already-classified errors keep their own context; anything else is
    matched on its message.
    """
    if isinstance(error, CustodyError):
        return ErrorContext(
            category=error.context.category,
            recoverable=error.context.recoverable,
            suggested_action=error.context.suggested_action,
            provider=error.context.provider,
            tx_id=error.context.tx_id,
            details=dict(error.context.details),
        )

    message = str(error).lower()

    rate_limit_patterns = ["rate limit", "too many requests", "429", "throttl"]
    if any(p in message for p in rate_limit_patterns):
        return ErrorContext(category=ErrorCategory.RATE_LIMIT, recoverable=True)

    network_patterns = ["connection", "network", "unreachable", "refused", "dns", "ssl"]
    if any(p in message for p in network_patterns):
        return ErrorContext(category=ErrorCategory.NETWORK, recoverable=True)

    timeout_patterns = ["timeout", "timed out", "deadline"]
    if any(p in message for p in timeout_patterns):
        return ErrorContext(category=ErrorCategory.TIMEOUT, recoverable=True)

    funds_patterns = ["insufficient", "not enough", "attempt to debit"]
    if any(p in message for p in funds_patterns):
        return ErrorContext(category=ErrorCategory.INSUFFICIENT_FUNDS, recoverable=False)

    return ErrorContext(category=ErrorCategory.UNKNOWN, recoverable=False)
