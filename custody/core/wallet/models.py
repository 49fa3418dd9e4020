"""
Wallet models.

``Wallet`` is the persisted, encrypted-at-rest account. ``DecryptedSigner``
is the ephemeral handle that exists only while one transfer is signed.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from nacl.signing import SigningKey

from ..errors import DecryptionError, ValidationError
from ...services.address import base58_encode

SEED_LENGTH = 32


@dataclass(frozen=True)
class Wallet:
    """Single-account wallet. The secret is only ever held as an opaque ciphertext blob."""

    public_address: str
    encrypted_secret: bytes = field(repr=False)

    def to_dict(self) -> Dict[str, str]:
        return {
            "public_address": self.public_address,
            "encrypted_secret": base64.b64encode(self.encrypted_secret).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Wallet":
        try:
            address = str(data["public_address"])
            blob = base64.b64decode(data["encrypted_secret"], validate=True)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError("Malformed wallet record", field_name="wallet") from exc
        return cls(public_address=address, encrypted_secret=blob)


@dataclass
class TransferRequest:
    """A SOL transfer from ``source_wallet``. Validated by the engine, not here."""

    recipient_address: str
    amount: Decimal
    source_wallet: Wallet


class DecryptedSigner:
    """
    Ephemeral Ed25519 signer over a zeroable seed buffer.

    Owned by the call that decrypted it and wiped before that call returns.
    Use as a context manager::

        with vault.decrypt(wallet.encrypted_secret) as signer:
            signature = signer.sign(message_bytes)

    PyNaCl copies the seed into an immutable ``bytes`` while a signature is
    produced; that copy is dropped immediately and cannot be zeroed.
    """

    __slots__ = ("_seed", "_public_key")

    def __init__(self, seed: bytearray):
        if len(seed) != SEED_LENGTH:
            raise DecryptionError("Decrypted secret has unexpected length")
        self._seed: Optional[bytearray] = seed
        self._public_key = SigningKey(bytes(seed)).verify_key.encode()

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def public_address(self) -> str:
        return base58_encode(self._public_key)

    @property
    def is_wiped(self) -> bool:
        return self._seed is None

    def sign(self, message: bytes) -> bytes:
        """Return the 64-byte detached Ed25519 signature of ``message``."""
        if self._seed is None:
            raise DecryptionError("Signer has been discarded")
        return SigningKey(bytes(self._seed)).sign(message).signature

    def wipe(self) -> None:
        if self._seed is None:
            return
        for i in range(len(self._seed)):
            self._seed[i] = 0
        self._seed = None

    def __enter__(self) -> "DecryptedSigner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        state = "wiped" if self._seed is None else "live"
        return f"DecryptedSigner(address={self.public_address}, {state})"

    def __reduce__(self):
        raise TypeError("DecryptedSigner cannot be serialized")
