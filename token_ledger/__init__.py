"""
Token Ledger

A fixed-supply fungible token ledger with direct and delegated transfers,
integer base-unit arithmetic, and a hash-chained audit trail.
"""

__version__ = "1.0.0"
