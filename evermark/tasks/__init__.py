"""
Background tasks.

- ledger_sync: copies ledger records missing from the fast store
"""
