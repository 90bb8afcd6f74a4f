"""HTTP surface of the quote session.

All operations are read-only or drive quote polling; nothing in this layer
signs or broadcasts transactions.
"""

__all__ = [
    "app",
    "contracts",
    "controllers",
]
