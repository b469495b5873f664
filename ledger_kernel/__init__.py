"""
Ledger Kernel

A multi-tenant double-entry bookkeeping core with:
- Chart-of-accounts tree with nature-driven signs
- Balanced, atomically posted vouchers with an approval lifecycle
- Derived (never stored) ledger balances
- Bank statement import, matching and reconciliation records
"""

__version__ = "0.1.0"
