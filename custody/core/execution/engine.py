"""
Transaction Engine.

Orchestrates one SOL transfer: validate, authenticate, decrypt, sign,
submit once, and poll for confirmation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import structlog

from ..errors import (
    AmountTooSmallError,
    AuthError,
    ConfirmationTimeoutError,
    DecryptionError,
    SubmissionError,
    ValidationError,
)
from ..wallet.models import TransferRequest, Wallet
from ..wallet.vault import KeyVault
from ...auth.gate import AuthGate
from ...config import settings
from ...providers.base import LedgerClient, LedgerTxState
from ...services.address import is_valid_solana_address
from ...services.units import MAX_LAMPORTS, to_base_units, to_decimal
from .models import TIMEOUT_REASON, ConfirmationStatus, SignedTransfer
from .tx_builder import TransactionBuilder

logger = logging.getLogger(__name__)


class TransactionEngine:
    """
    Sign-and-submit for a single transfer.

    Handles:
    - Input validation before any network or platform call
    - Authentication before every decrypt, never cached
    - Single-attempt submission (no automatic resubmission)
    - Confirmation polling bounded by a timeout

    Sends from the same wallet are serialized with a per-address lock.

    Usage:
        engine = TransactionEngine(ledger, vault, AuthGate(platform))
        status = await engine.send(TransferRequest(
            recipient_address="...",
            amount=Decimal("0.5"),
            source_wallet=wallet,
        ))
    """

    def __init__(
        self,
        ledger: LedgerClient,
        vault: KeyVault,
        auth_gate: AuthGate,
        *,
        confirmation_timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ):
        self._ledger = ledger
        self._vault = vault
        self._auth_gate = auth_gate
        self._timeout_s = (
            confirmation_timeout_s
            if confirmation_timeout_s is not None
            else settings.confirmation_timeout_seconds
        )
        self._poll_interval_s = (
            poll_interval_s
            if poll_interval_s is not None
            else settings.confirmation_poll_interval_seconds
        )
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, address: str) -> asyncio.Lock:
        if address not in self._locks:
            self._locks[address] = asyncio.Lock()
        return self._locks[address]

    # ---------------------------
    # Validation
    # ---------------------------
    @staticmethod
    def validate(request: TransferRequest) -> int:
        """
        Check a transfer request and return its amount in lamports.

        Raises: ValidationError, or AmountTooSmallError when the amount
        rounds down to zero lamports.
        """
        if not isinstance(request.source_wallet, Wallet):
            raise ValidationError("Source wallet is required", field_name="source_wallet")

        try:
            amount = to_decimal(request.amount)
        except ValueError as exc:
            raise ValidationError(str(exc), field_name="amount") from exc
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", field_name="amount")

        if not is_valid_solana_address(request.recipient_address):
            raise ValidationError("Recipient address is not a valid Solana address", field_name="recipient_address")

        lamports = to_base_units(amount)
        if lamports <= 0:
            raise AmountTooSmallError(amount)
        if lamports > MAX_LAMPORTS:
            raise ValidationError(f"Amount {amount} exceeds the largest transferable amount", field_name="amount")
        return lamports

    # ---------------------------
    # Send
    # ---------------------------
    async def send(
        self,
        request: TransferRequest,
        *,
        raise_on_timeout: bool = False,
    ) -> ConfirmationStatus:
        """
        Transfer ``request.amount`` SOL to the recipient.

        Returns Confirmed(tx_id), or Failed(reason) when the ledger rejects
        the transaction on-chain or confirmation times out.

        Raises: ValidationError, AuthError, DecryptionError, SubmissionError,
        and ConfirmationTimeoutError when ``raise_on_timeout`` is set.
        """
        lamports = self.validate(request)
        wallet = request.source_wallet

        with structlog.contextvars.bound_contextvars(wallet=wallet.public_address):
            async with self._get_lock(wallet.public_address):
                signed = await self._authorize_and_sign(request, lamports)
                transaction_id = await self._submit(signed)
                try:
                    return await self.wait_for_confirmation(
                        transaction_id,
                        raise_on_timeout=raise_on_timeout,
                    )
                except asyncio.CancelledError:
                    logger.info("Send abandoned while awaiting confirmation of %s", transaction_id)
                    raise

    async def _authorize_and_sign(self, request: TransferRequest, lamports: int) -> SignedTransfer:
        if not await self._auth_gate.authenticate():
            raise AuthError()

        try:
            blockhash = await self._ledger.get_latest_blockhash()
        except Exception as exc:  # noqa: BLE001
            raise SubmissionError("Could not fetch a recent blockhash; nothing was submitted", cause=exc) from exc

        # Argon2id is CPU and memory bound; keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._decrypt_and_sign, request, lamports, blockhash)

    def _decrypt_and_sign(self, request: TransferRequest, lamports: int, blockhash: str) -> SignedTransfer:
        wallet = request.source_wallet
        signer = self._vault.decrypt(wallet.encrypted_secret)
        try:
            if signer.public_address != wallet.public_address:
                raise DecryptionError("Decrypted key does not match the wallet address")
            return TransactionBuilder.sign_transfer(
                signer,
                request.recipient_address,
                lamports,
                blockhash,
            )
        finally:
            signer.wipe()

    async def _submit(self, signed: SignedTransfer) -> str:
        try:
            transaction_id = await self._ledger.submit_transaction(signed.raw_transaction)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Submission of %s lamports failed: %s", signed.lamports, exc)
            raise SubmissionError(f"Transaction submission failed: {exc}", cause=exc) from exc

        logger.info(
            "Submitted transfer %s of %s lamports to %s (blockhash %s)",
            transaction_id,
            signed.lamports,
            signed.to_address,
            signed.recent_blockhash,
        )
        return transaction_id

    # ---------------------------
    # Confirmation
    # ---------------------------
    async def wait_for_confirmation(
        self,
        transaction_id: str,
        *,
        timeout_s: Optional[float] = None,
        raise_on_timeout: bool = False,
    ) -> ConfirmationStatus:
        """
        Poll the ledger until the transaction is final or the timeout elapses.

        Read errors while polling are logged and polling continues.
        """
        timeout = self._timeout_s if timeout_s is None else timeout_s
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                status = await self._ledger.get_confirmation_status(transaction_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Confirmation poll for %s failed: %s", transaction_id, exc)
                status = None

            if status is not None:
                if status.state == LedgerTxState.CONFIRMED:
                    logger.info("Transaction %s confirmed", transaction_id)
                    return ConfirmationStatus.confirmed(transaction_id)
                if status.state == LedgerTxState.FAILED:
                    logger.warning("Transaction %s failed on-chain: %s", transaction_id, status.error)
                    return ConfirmationStatus.failed(status.error or "failed", transaction_id)

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self._poll_interval_s, remaining))

        logger.warning("Transaction %s not confirmed after %ss", transaction_id, timeout)
        if raise_on_timeout:
            raise ConfirmationTimeoutError(transaction_id, timeout)
        return ConfirmationStatus.failed(TIMEOUT_REASON, transaction_id)
