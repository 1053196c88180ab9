"""
Wallet Whisperer backend: behavioral profiling for Solana wallets.

Ingests a wallet's on-chain history, normalizes it into a trade ledger, scores
trading psychology (risk, FOMO, conviction, patience, degen, archetype) and
serves results through a hot cache / durable store / fresh compute pipeline.
"""

__version__ = "0.1.0"
