"""Base58 helpers and Solana address validation."""

from __future__ import annotations

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {char: index for index, char in enumerate(_BASE58_ALPHABET)}

SOLANA_PUBKEY_LENGTH = 32


def base58_decode(value: str) -> bytes:
    if not value:
        return b""
    num = 0
    for char in value:
        if char not in _BASE58_INDEX:
            raise ValueError("Invalid base58 character")
        num = num * 58 + _BASE58_INDEX[char]
    combined = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    pad = len(value) - len(value.lstrip("1"))
    return b"\x00" * pad + combined


def base58_encode(data: bytes) -> str:
    if not data:
        return ""
    num = int.from_bytes(data, "big")
    encoded = ""
    while num > 0:
        num, rem = divmod(num, 58)
        encoded = _BASE58_ALPHABET[rem] + encoded
    pad = 0
    for byte in data:
        if byte == 0:
            pad += 1
        else:
            break
    return "1" * pad + encoded


def is_valid_solana_address(address: str) -> bool:
    """Return True if ``address`` is base58 and decodes to a 32-byte public key."""
    if not address or not isinstance(address, str):
        return False
    length = len(address)
    if length < 32 or length > 44:
        return False
    if not all(ch in _BASE58_INDEX for ch in address):
        return False
    return len(base58_decode(address)) == SOLANA_PUBKEY_LENGTH


__all__ = [
    "base58_decode",
    "base58_encode",
    "is_valid_solana_address",
    "SOLANA_PUBKEY_LENGTH",
]
