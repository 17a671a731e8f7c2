"""
Stock Kernel - inventory ledger and access-scope resolution.

A multi-tenant, append-only stock ledger with:
- Branch/hierarchy scope decisions threaded through every call
- Immutable stock movements with previous/new stock snapshots
- Optimistic concurrency on product balances
- Serialized-unit checkout and return lifecycle
"""

__version__ = "0.1.0"
