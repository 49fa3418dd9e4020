"""
Solana JSON-RPC ledger client.

Handles blockhash lookup, transaction submission, signature status polling
and balance reads against a Solana RPC node.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.errors import LedgerRpcError
from .base import LedgerClient, LedgerTxState, LedgerTxStatus

logger = logging.getLogger(__name__)

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


@dataclass
class SolanaRpcConfig:
    """Configuration for Solana RPC connection."""
    rpc_url: str
    commitment: str = "confirmed"
    skip_preflight: bool = True
    max_retries: int = 3
    timeout_s: float = 30.0

    @classmethod
    def from_settings(cls) -> "SolanaRpcConfig":
        return cls(
            rpc_url=settings.solana_rpc_url,
            commitment=settings.solana_commitment,
            skip_preflight=settings.solana_skip_preflight,
            max_retries=settings.rpc_max_retries,
            timeout_s=settings.rpc_timeout_seconds,
        )


class SolanaRpcClient(LedgerClient):
    """
    Ledger client for Solana.

    Reads retry transient failures; ``submit_transaction`` is a single
    attempt because a resent transfer may already have landed.

    Usage:
        client = SolanaRpcClient(SolanaRpcConfig(
            rpc_url="https://api.mainnet-beta.solana.com"
        ))
        blockhash = await client.get_latest_blockhash()
        signature = await client.submit_transaction(signed_tx_bytes)
        status = await client.get_confirmation_status(signature)
        await client.aclose()
    """

    name = "solana-rpc"

    def __init__(
        self,
        config: Optional[SolanaRpcConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config or SolanaRpcConfig.from_settings()
        self.timeout_s = self._config.timeout_s
        self._client = client
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_s)
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def ready(self) -> bool:
        return bool(self._config.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "RPC URL not configured"}
        try:
            data = await self._rpc_call("getHealth", [])
            return {"status": "healthy" if data.get("result") == "ok" else "degraded"}
        except LedgerRpcError as e:
            return {"status": "error", "reason": str(e)}

    async def _rpc_call(
        self,
        method: str,
        params: List[Any],
        *,
        retry: bool = True,
    ) -> Dict[str, Any]:
        """Make an RPC call to the Solana node."""
        client = await self._get_client()
        self._request_id += 1

        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        attempts = self._config.max_retries if retry else 1

        for attempt in range(attempts):
            try:
                response = await client.post(
                    self._config.rpc_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                if attempt == attempts - 1:
                    raise LedgerRpcError(f"HTTP error: {e.response.status_code}") from e
                await asyncio.sleep(0.5 * (attempt + 1))
                continue
            except (httpx.HTTPError, ValueError) as e:
                if attempt == attempts - 1:
                    raise LedgerRpcError(f"{method} request failed: {e}") from e
                await asyncio.sleep(0.5 * (attempt + 1))
                continue

            if not isinstance(data, dict):
                raise LedgerRpcError(f"Unexpected {method} response")
            if "error" in data:
                error = data["error"] or {}
                message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                code = error.get("code") if isinstance(error, dict) else None
                raise LedgerRpcError(f"RPC error: {message}", code=code)
            return data

        raise LedgerRpcError("Max retries exceeded")

    async def get_latest_blockhash(self) -> str:
        data = await self._rpc_call(
            "getLatestBlockhash",
            [{"commitment": self._config.commitment}],
        )
        value = (data.get("result") or {}).get("value") or {}
        blockhash = value.get("blockhash")
        if not blockhash:
            raise LedgerRpcError("No blockhash returned from getLatestBlockhash")
        return blockhash

    async def submit_transaction(self, signed_transaction: bytes) -> str:
        """
        Send a signed transaction.

        Args:
            signed_transaction: Serialized signed transaction

        Returns:
            Transaction signature (base58)
        """
        options = {
            "encoding": "base64",
            "skipPreflight": self._config.skip_preflight,
            "preflightCommitment": self._config.commitment,
        }
        encoded = base64.b64encode(signed_transaction).decode("ascii")
        data = await self._rpc_call("sendTransaction", [encoded, options], retry=False)

        signature = data.get("result")
        if not signature or not isinstance(signature, str):
            raise LedgerRpcError("No signature returned from sendTransaction")
        logger.info("Submitted transaction %s", signature)
        return signature

    async def get_confirmation_status(self, transaction_id: str) -> LedgerTxStatus:
        data = await self._rpc_call(
            "getSignatureStatuses",
            [[transaction_id], {"searchTransactionHistory": False}],
        )
        values = (data.get("result") or {}).get("value") or [None]
        status = values[0]

        if status is None:
            # Not yet seen by the node
            return LedgerTxStatus(state=LedgerTxState.PENDING)

        slot = status.get("slot")
        confirmations = status.get("confirmations")
        if status.get("err") is not None:
            return LedgerTxStatus(
                state=LedgerTxState.FAILED,
                slot=slot,
                confirmations=confirmations,
                error=str(status.get("err")),
            )

        reached = _COMMITMENT_RANK.get(status.get("confirmationStatus") or "", -1)
        target = _COMMITMENT_RANK.get(self._config.commitment, 1)
        state = LedgerTxState.CONFIRMED if reached >= target else LedgerTxState.PENDING
        return LedgerTxStatus(state=state, slot=slot, confirmations=confirmations)

    async def get_balance(self, address: str) -> int:
        data = await self._rpc_call(
            "getBalance",
            [address, {"commitment": self._config.commitment}],
        )
        value = (data.get("result") or {}).get("value")
        if isinstance(value, bool) or not isinstance(value, int):
            raise LedgerRpcError("Unexpected getBalance response")
        return value
