import asyncio
import logging
import time
from decimal import Decimal

import pytest
from nacl.pwhash import argon2id

from custody.auth import AuthGate
from custody.core.errors import (
    AmountTooSmallError,
    AuthError,
    ConfirmationTimeoutError,
    DecryptionError,
    ErrorCategory,
    LedgerRpcError,
    SubmissionError,
    ValidationError,
)
from custody.core.execution import TIMEOUT_REASON, ConfirmationState, TransactionEngine
from custody.core.wallet import TransferRequest, Wallet
from custody.services.balance import BalanceTracker
from custody.services.units import LAMPORTS_PER_SOL, MAX_LAMPORTS

from fakes import FAKE_BLOCKHASH, NETWORK_FEE_LAMPORTS, FakeAuthPlatform, FakeLedger, RecordingVault, make_vault


def _engine(ledger, vault, platform, **kwargs):
    kwargs.setdefault("poll_interval_s", 0)
    kwargs.setdefault("confirmation_timeout_s", 1.0)
    return TransactionEngine(ledger, vault, AuthGate(platform), **kwargs)


def _recording_vault(call_log):
    return RecordingVault(
        "correct horse battery staple",
        opslimit=argon2id.OPSLIMIT_MIN,
        memlimit=argon2id.MEMLIMIT_MIN,
        call_log=call_log,
    )


@pytest.mark.asyncio
async def test_end_to_end_send_confirms_and_reduces_balance(recipient, call_log):
    vault = _recording_vault(call_log)
    wallet = vault.generate()
    ledger = FakeLedger(balances={wallet.public_address: 2 * LAMPORTS_PER_SOL}, confirm_after=2, call_log=call_log)
    engine = _engine(ledger, vault, FakeAuthPlatform(call_log=call_log))
    tracker = BalanceTracker(ledger)

    before = await tracker.refresh(wallet.public_address)
    status = await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))
    after = await tracker.refresh(wallet.public_address)

    assert status.state == ConfirmationState.CONFIRMED
    assert status.transaction_id in ledger.status_polls
    assert ledger.status_polls[status.transaction_id] == 2
    assert ledger.submission_attempts == 1
    fee = Decimal(NETWORK_FEE_LAMPORTS) / LAMPORTS_PER_SOL
    assert before.value - after.value == Decimal("0.5") + fee
    assert ledger.balances[recipient] == LAMPORTS_PER_SOL // 2


@pytest.mark.asyncio
async def test_authenticate_always_precedes_decrypt(recipient, call_log):
    vault = _recording_vault(call_log)
    wallet = vault.generate()
    ledger = FakeLedger(call_log=call_log)
    engine = _engine(ledger, vault, FakeAuthPlatform(call_log=call_log))

    await engine.send(TransferRequest(recipient, Decimal("0.1"), wallet))
    await engine.send(TransferRequest(recipient, Decimal("0.1"), wallet))

    decrypt_positions = [i for i, call in enumerate(call_log) if call == "decrypt"]
    assert len(decrypt_positions) == 2
    for position in decrypt_positions:
        preceding = [c for c in call_log[:position] if c in ("authenticate", "decrypt")]
        assert preceding[-1] == "authenticate"
    assert call_log.count("authenticate") == 2


@pytest.mark.asyncio
async def test_auth_declined_raises_without_decrypt_or_submission(recipient, call_log):
    vault = _recording_vault(call_log)
    wallet = vault.generate()
    ledger = FakeLedger()
    engine = _engine(ledger, vault, FakeAuthPlatform(approve=False, call_log=call_log))

    with pytest.raises(AuthError):
        await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))

    assert call_log == ["authenticate"]
    assert ledger.submission_attempts == 0
    assert ledger.network_calls == 0


@pytest.mark.asyncio
async def test_missing_auth_hardware_raises_auth_error(wallet, vault, recipient):
    ledger = FakeLedger()
    engine = _engine(ledger, vault, FakeAuthPlatform(hardware=False))

    with pytest.raises(AuthError):
        await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))
    assert ledger.submission_attempts == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "amount",
    [Decimal("0"), Decimal("-1"), 0, -1, "abc", Decimal("NaN"), None, Decimal("20000000000"), Decimal("1e30")],
)
async def test_invalid_amounts_fail_before_any_call(wallet, vault, recipient, amount):
    ledger = FakeLedger()
    platform = FakeAuthPlatform()
    engine = _engine(ledger, vault, platform)

    with pytest.raises(ValidationError):
        await engine.send(TransferRequest(recipient, amount, wallet))

    assert ledger.network_calls == 0
    assert platform.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("address", ["", "validAddr123", "0x1234567890abcdef1234567890ABCDEF12345678", "O0lIO0lIO0lIO0lIO0lIO0lIO0lIO0lI"])
async def test_malformed_recipient_fails_before_any_call(wallet, vault, address):
    ledger = FakeLedger()
    platform = FakeAuthPlatform()
    engine = _engine(ledger, vault, platform)

    with pytest.raises(ValidationError) as excinfo:
        await engine.send(TransferRequest(address, Decimal("0.5"), wallet))

    assert excinfo.value.field_name == "recipient_address"
    assert ledger.network_calls == 0
    assert platform.calls == []


@pytest.mark.asyncio
async def test_dust_amount_raises_amount_too_small(wallet, vault, recipient):
    ledger = FakeLedger()
    engine = _engine(ledger, vault, FakeAuthPlatform())

    with pytest.raises(AmountTooSmallError):
        await engine.send(TransferRequest(recipient, Decimal("0.0000000009"), wallet))
    assert ledger.network_calls == 0


def test_validate_rounds_toward_zero(wallet, recipient):
    request = TransferRequest(recipient, Decimal("0.0000000019"), wallet)

    assert TransactionEngine.validate(request) == 1


@pytest.mark.asyncio
async def test_tampered_secret_raises_decryption_error_without_submission(wallet, vault, recipient):
    blob = bytearray(wallet.encrypted_secret)
    blob[-1] ^= 0x01
    tampered = Wallet(wallet.public_address, bytes(blob))
    ledger = FakeLedger()
    engine = _engine(ledger, vault, FakeAuthPlatform())

    with pytest.raises(DecryptionError):
        await engine.send(TransferRequest(recipient, Decimal("0.5"), tampered))
    assert ledger.submission_attempts == 0


@pytest.mark.asyncio
async def test_mismatched_wallet_address_is_rejected(vault, recipient):
    first = vault.generate()
    second = vault.generate()
    swapped = Wallet(first.public_address, second.encrypted_secret)
    ledger = FakeLedger()
    engine = _engine(ledger, vault, FakeAuthPlatform())

    with pytest.raises(DecryptionError):
        await engine.send(TransferRequest(recipient, Decimal("0.5"), swapped))
    assert ledger.submission_attempts == 0


@pytest.mark.asyncio
async def test_submission_failure_is_single_attempt_and_signer_wiped(recipient, call_log):
    vault = _recording_vault(call_log)
    wallet = vault.generate()
    ledger = FakeLedger(fail_submit=LedgerRpcError("RPC error: insufficient funds for rent"))
    engine = _engine(ledger, vault, FakeAuthPlatform())

    with pytest.raises(SubmissionError) as excinfo:
        await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))

    assert ledger.submission_attempts == 1
    assert excinfo.value.context.recoverable is False
    assert all(signer.is_wiped for signer in vault.signers)


@pytest.mark.asyncio
async def test_submission_error_classifies_network_cause(wallet, vault, recipient):
    ledger = FakeLedger(fail_submit=ConnectionError("connection refused"))
    engine = _engine(ledger, vault, FakeAuthPlatform())

    with pytest.raises(SubmissionError) as excinfo:
        await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))

    assert excinfo.value.context.category == ErrorCategory.NETWORK


@pytest.mark.asyncio
async def test_signer_wiped_after_success(recipient, call_log):
    vault = _recording_vault(call_log)
    wallet = vault.generate()
    engine = _engine(FakeLedger(), vault, FakeAuthPlatform())

    await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))

    assert len(vault.signers) == 1
    assert vault.signers[0].is_wiped


@pytest.mark.asyncio
async def test_timeout_returns_failed_status(wallet, vault, recipient):
    ledger = FakeLedger(confirm_after=10_000)
    engine = _engine(ledger, vault, FakeAuthPlatform(), confirmation_timeout_s=0.05)

    status = await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))

    assert status.state == ConfirmationState.FAILED
    assert status.reason == TIMEOUT_REASON
    assert status.transaction_id is not None
    assert ledger.submission_attempts == 1


@pytest.mark.asyncio
async def test_timeout_can_raise(wallet, vault, recipient):
    ledger = FakeLedger(confirm_after=10_000)
    engine = _engine(ledger, vault, FakeAuthPlatform(), confirmation_timeout_s=0.05)

    with pytest.raises(ConfirmationTimeoutError):
        await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet), raise_on_timeout=True)


@pytest.mark.asyncio
async def test_onchain_failure_returns_failed_with_reason(wallet, vault, recipient):
    ledger = FakeLedger(onchain_error="{'InstructionError': [0, 'Custom']}")
    engine = _engine(ledger, vault, FakeAuthPlatform())

    status = await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))

    assert status.is_failed
    assert "InstructionError" in status.reason


@pytest.mark.asyncio
async def test_transient_poll_errors_keep_polling(wallet, vault, recipient):
    ledger = FakeLedger(confirm_after=2)
    original = ledger.get_confirmation_status
    failures = {"left": 1}

    async def flaky(tx_id):
        if failures["left"]:
            failures["left"] -= 1
            raise LedgerRpcError("HTTP error: 503")
        return await original(tx_id)

    ledger.get_confirmation_status = flaky
    engine = _engine(ledger, vault, FakeAuthPlatform())

    status = await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))

    assert status.is_confirmed


@pytest.mark.asyncio
async def test_cancelled_send_stops_polling_without_retraction(recipient, call_log):
    vault = _recording_vault(call_log)
    wallet = vault.generate()
    ledger = FakeLedger(confirm_after=10_000)
    engine = _engine(ledger, vault, FakeAuthPlatform(), poll_interval_s=0.01, confirmation_timeout_s=30)

    task = asyncio.create_task(engine.send(TransferRequest(recipient, Decimal("0.5"), wallet)))
    while ledger.submission_attempts == 0:
        await asyncio.sleep(0.005)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    polls_at_cancel = sum(ledger.status_polls.values())
    await asyncio.sleep(0.05)
    assert sum(ledger.status_polls.values()) == polls_at_cancel
    assert ledger.submission_attempts == 1
    assert vault.signers[0].is_wiped


@pytest.mark.asyncio
async def test_concurrent_sends_from_one_wallet_are_serialized(wallet, vault, recipient):
    ledger = FakeLedger()
    in_flight = {"now": 0, "max": 0}
    original_submit = ledger.submit_transaction

    async def slow_submit(raw):
        in_flight["now"] += 1
        in_flight["max"] = max(in_flight["max"], in_flight["now"])
        await asyncio.sleep(0.01)
        try:
            return await original_submit(raw)
        finally:
            in_flight["now"] -= 1

    ledger.submit_transaction = slow_submit
    engine = _engine(ledger, vault, FakeAuthPlatform())

    results = await asyncio.gather(
        engine.send(TransferRequest(recipient, Decimal("0.1"), wallet)),
        engine.send(TransferRequest(recipient, Decimal("0.2"), wallet)),
    )

    assert all(status.is_confirmed for status in results)
    assert in_flight["max"] == 1


@pytest.mark.asyncio
async def test_wait_for_confirmation_resumes_known_transaction(vault):
    ledger = FakeLedger(confirm_after=3)
    engine = _engine(ledger, vault, FakeAuthPlatform())

    status = await engine.wait_for_confirmation("5" * 88)

    assert status.is_confirmed
    assert ledger.status_polls["5" * 88] == 3


def test_engine_reads_defaults_from_settings(monkeypatch):
    from custody.core.execution import engine as engine_module

    monkeypatch.setattr(engine_module.settings, "confirmation_timeout_seconds", 12.5)
    engine = TransactionEngine(FakeLedger(), make_vault(), AuthGate(FakeAuthPlatform()))

    assert engine._timeout_s == 12.5


def test_validate_accepts_largest_u64_amount(wallet, recipient):
    largest = Decimal(MAX_LAMPORTS) / LAMPORTS_PER_SOL

    assert TransactionEngine.validate(TransferRequest(recipient, largest, wallet)) == MAX_LAMPORTS

    one_more = largest + Decimal(1) / LAMPORTS_PER_SOL
    with pytest.raises(ValidationError) as excinfo:
        TransactionEngine.validate(TransferRequest(recipient, one_more, wallet))
    assert excinfo.value.field_name == "amount"


@pytest.mark.asyncio
async def test_key_derivation_does_not_block_the_event_loop(monkeypatch, wallet, vault, recipient):
    real_decrypt = vault.decrypt

    def slow_decrypt(encrypted_secret):
        time.sleep(0.2)
        return real_decrypt(encrypted_secret)

    monkeypatch.setattr(vault, "decrypt", slow_decrypt)
    engine = _engine(FakeLedger(), vault, FakeAuthPlatform())
    loop = asyncio.get_running_loop()
    gaps = []

    async def ticker():
        last = loop.time()
        while True:
            await asyncio.sleep(0.005)
            now = loop.time()
            gaps.append(now - last)
            last = now

    ticks = asyncio.create_task(ticker())
    try:
        status = await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))
    finally:
        ticks.cancel()
        await asyncio.gather(ticks, return_exceptions=True)

    assert status.is_confirmed
    assert len(gaps) >= 10
    assert max(gaps) < 0.15


@pytest.mark.asyncio
async def test_submission_is_logged_with_blockhash(caplog, wallet, vault, recipient):
    caplog.set_level(logging.INFO, logger="custody.core.execution.engine")
    engine = _engine(FakeLedger(), vault, FakeAuthPlatform())

    status = await engine.send(TransferRequest(recipient, Decimal("0.5"), wallet))

    submitted = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Submitted transfer")]
    assert len(submitted) == 1
    assert status.transaction_id in submitted[0]
    assert FAKE_BLOCKHASH in submitted[0]
