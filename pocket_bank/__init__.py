"""
Pocket Bank

A terminal banking ledger simulator: accounts, deposits, withdrawals and
transfers with Decimal money, a single-session login state machine and
lock-protected persistence to JSON or SQLite.
"""

__version__ = "1.0.0"
