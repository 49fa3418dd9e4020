from .base import LedgerClient, LedgerTxState, LedgerTxStatus, PriceProvider, Provider
from .coingecko import CoingeckoProvider
from .solana import SolanaRpcClient, SolanaRpcConfig

__all__ = [
    "CoingeckoProvider",
    "LedgerClient",
    "LedgerTxState",
    "LedgerTxStatus",
    "PriceProvider",
    "Provider",
    "SolanaRpcClient",
    "SolanaRpcConfig",
]
