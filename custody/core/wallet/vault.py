"""
Key Vault - sole owner of wallet key material.

Security:
- Ed25519 keypairs (PyNaCl)
- Argon2id key derivation from the user's passphrase, fresh salt per blob
- XSalsa20-Poly1305 authenticated encryption (nacl.secret.SecretBox)

Plaintext seeds only exist inside a DecryptedSigner handed to the caller.
The vault never logs, serializes or caches them.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

import nacl.utils
from nacl.exceptions import CryptoError
from nacl.pwhash import argon2id
from nacl.secret import SecretBox
from nacl.signing import SigningKey

from ..errors import DecryptionError, KeyGenError
from ...config import settings
from ...services.address import base58_encode
from .models import SEED_LENGTH, DecryptedSigner, Wallet

logger = logging.getLogger(__name__)


# ============================================
# Blob format
# ============================================

BLOB_VERSION = 1
SALT_SIZE = argon2id.SALTBYTES  # 16
NONCE_SIZE = SecretBox.NONCE_SIZE  # 24
MAC_SIZE = SecretBox.MACBYTES  # 16

_HEADER_SIZE = 1 + SALT_SIZE + NONCE_SIZE
MIN_BLOB_SIZE = _HEADER_SIZE + MAC_SIZE + 1


def _zero(buffer: bytearray) -> None:
    for i in range(len(buffer)):
        buffer[i] = 0


class KeyVault:
    """
    Generates, encrypts and decrypts the wallet secret.

    Usage:
        vault = KeyVault(passphrase)
        wallet = vault.generate()          # persist wallet.to_dict()

        # Only after AuthGate.authenticate() succeeded for this operation:
        with vault.decrypt(wallet.encrypted_secret) as signer:
            signature = signer.sign(message)
    """

    def __init__(
        self,
        passphrase: Union[str, bytes],
        *,
        opslimit: Optional[int] = None,
        memlimit: Optional[int] = None,
    ):
        if isinstance(passphrase, str):
            passphrase = passphrase.encode("utf-8")
        if not passphrase:
            raise ValueError("Passphrase must not be empty")
        self._passphrase = bytes(passphrase)
        self._opslimit = opslimit or settings.kdf_opslimit
        self._memlimit = memlimit or settings.kdf_memlimit

    def __repr__(self) -> str:
        return "KeyVault(<passphrase hidden>)"

    def _derive_key(self, salt: bytes) -> bytes:
        return argon2id.kdf(
            SecretBox.KEY_SIZE,
            self._passphrase,
            salt,
            opslimit=self._opslimit,
            memlimit=self._memlimit,
        )

    # ============================================
    # Encryption
    # ============================================

    def encrypt(self, secret: Union[bytes, bytearray]) -> bytes:
        """
        Encrypt raw secret bytes.

        Returns: version || salt || nonce || ciphertext+MAC
        """
        salt = nacl.utils.random(SALT_SIZE)
        nonce = nacl.utils.random(NONCE_SIZE)
        box = SecretBox(self._derive_key(salt))
        ciphertext = box.encrypt(bytes(secret), nonce).ciphertext
        return bytes([BLOB_VERSION]) + salt + nonce + ciphertext

    def decrypt(self, encrypted_secret: bytes) -> DecryptedSigner:
        """
        Decrypt a wallet secret into a single-use signer.

        The caller must have a successful AuthGate.authenticate() for the
        current operation and must wipe the signer before returning.

        Raises: DecryptionError if the blob is malformed, the passphrase is
        wrong, or the data was tampered with.
        """
        if not isinstance(encrypted_secret, (bytes, bytearray)) or len(encrypted_secret) < MIN_BLOB_SIZE:
            raise DecryptionError("Encrypted secret is malformed")
        blob = bytes(encrypted_secret)
        if blob[0] != BLOB_VERSION:
            raise DecryptionError(f"Unsupported encrypted secret version {blob[0]}")

        salt = blob[1:1 + SALT_SIZE]
        nonce = blob[1 + SALT_SIZE:_HEADER_SIZE]
        ciphertext = blob[_HEADER_SIZE:]

        try:
            box = SecretBox(self._derive_key(salt))
            seed = bytearray(box.decrypt(ciphertext, nonce))
        except CryptoError as exc:
            logger.warning("Encrypted secret failed authentication")
            raise DecryptionError("Encrypted secret failed authentication") from exc

        if len(seed) != SEED_LENGTH:
            _zero(seed)
            raise DecryptionError("Encrypted secret has unexpected length")
        return DecryptedSigner(seed)

    # ============================================
    # Key generation
    # ============================================

    def generate(self) -> Wallet:
        """
        Create a fresh keypair and return it as an encrypted Wallet.

        Raises: KeyGenError if the random source, key derivation or
        encryption fails. No partial wallet is ever returned.
        """
        seed = bytearray()
        try:
            seed = bytearray(nacl.utils.random(SEED_LENGTH))
            public_key = SigningKey(bytes(seed)).verify_key.encode()
            blob = self.encrypt(seed)
        except Exception as exc:  # noqa: BLE001
            logger.error("Wallet generation failed: %s", type(exc).__name__)
            raise KeyGenError("Wallet generation failed") from exc
        finally:
            _zero(seed)

        address = base58_encode(public_key)
        logger.info("Generated wallet %s", address)
        return Wallet(public_address=address, encrypted_secret=blob)
