"""
POS Kernel - register core

A store-backed point-of-sale core with:
- At most one open register session, enforced by the store
- Append-only transaction ledger
- Exact fixed-point money and cash denomination reconciliation
- Sales derived from the ledger, never stored
"""

__version__ = "0.1.0"
