"""
Ledger Core - Source Package

The storage-agnostic core of a personal-finance ledger: accounts,
categories, transactions, budgets and savings goals for one user.

DESIGN PRINCIPLES:
1. Cached balances always equal initial balance plus transaction effects
2. Fail early, fail visibly
3. No silent corrections
4. Every ledger write must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Core Team"
