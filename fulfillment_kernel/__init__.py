"""
Fulfillment Kernel

The workflow core for regulated radiopharmaceutical fulfillment:
- Order and batch state machines with fixed adjacency tables
- QC evaluation gating a signed, single batch release
- Separation of duties on release
- Payment confirmation with atomic invoice reconciliation
- Compare-and-swap status updates, hash-chained audit trail
"""

__version__ = "0.1.0"
