"""
Money Manager - Source Package

The loan ledger of a personal finance tracker: amortization schedules
with Actual/365 interest, cascading schedule edits, and balance
bookkeeping on top of a swappable document store.

DESIGN PRINCIPLES:
1. Schedule math is pure and deterministic
2. Every multi-document write is one atomic batch
3. Fail early, fail visibly - validate before touching storage
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Money Manager Team"
