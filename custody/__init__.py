"""
Custody core for a single-account Solana wallet.

KeyVault keeps the secret encrypted at rest, AuthGate guards every decrypt,
TransactionEngine signs and submits transfers, BalanceTracker and RateOracle
supply display data.

Host wiring:
    from custody.logging_config import setup_logging
    from custody.providers import CoingeckoProvider, SolanaRpcClient

    setup_logging()
    ledger = SolanaRpcClient()
    engine = TransactionEngine(ledger, KeyVault(passphrase), AuthGate(platform))
    oracle = RateOracle(CoingeckoProvider())
    await oracle.start()
"""

__version__ = "0.1.0"
