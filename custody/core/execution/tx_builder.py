"""
Transaction builder for native SOL transfers.
"""

from solders.hash import Hash
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from ..wallet.models import DecryptedSigner
from ...services.address import base58_encode
from .models import SignedTransfer


class TransactionBuilder:
    """
    Builds and signs SystemProgram transfers.

    The signer only ever sees the serialized message; the key never leaves
    the DecryptedSigner.
    """

    @staticmethod
    def build_transfer_message(
        from_public_key: bytes,
        to_address: str,
        lamports: int,
        recent_blockhash: str,
    ) -> Message:
        """
        Build the unsigned transfer message.

        Args:
            from_public_key: Sender's 32-byte public key (also fee payer)
            to_address: Recipient base58 address
            lamports: Amount in lamports
            recent_blockhash: Base58 blockhash from the ledger
        """
        payer = Pubkey(from_public_key)
        instruction = transfer(
            TransferParams(
                from_pubkey=payer,
                to_pubkey=Pubkey.from_string(to_address),
                lamports=lamports,
            )
        )
        return Message.new_with_blockhash([instruction], payer, Hash.from_string(recent_blockhash))

    @staticmethod
    def sign_transfer(
        signer: DecryptedSigner,
        to_address: str,
        lamports: int,
        recent_blockhash: str,
    ) -> SignedTransfer:
        """Build a transfer from the signer's account and sign it."""
        message = TransactionBuilder.build_transfer_message(
            signer.public_key, to_address, lamports, recent_blockhash,
        )
        signature = signer.sign(bytes(message))
        transaction = Transaction.populate(message, [Signature(signature)])

        return SignedTransfer(
            transaction_id=base58_encode(signature),
            raw_transaction=bytes(transaction),
            from_address=signer.public_address,
            to_address=to_address,
            lamports=lamports,
            recent_blockhash=recent_blockhash,
        )
