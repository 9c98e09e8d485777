"""
Credit ledger backend: per-user general and background-removal credit balances
with an append-only transaction trail.
"""
__version__ = "0.1.0"
