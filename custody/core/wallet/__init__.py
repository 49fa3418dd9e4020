"""
Wallet package - key custody for a single account.

Contains:
- Wallet: public address plus encrypted secret blob
- DecryptedSigner: single-use signer over a zeroable seed
- TransferRequest: a SOL transfer to submit
- KeyVault: keypair generation and secret encryption
"""

from .models import DecryptedSigner, TransferRequest, Wallet
from .vault import KeyVault

__all__ = [
    "DecryptedSigner",
    "KeyVault",
    "TransferRequest",
    "Wallet",
]
