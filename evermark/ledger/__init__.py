"""Authoritative ledger reads (EVM contracts over JSON-RPC)."""

from evermark.ledger.client import LedgerReader, Web3Ledger

__all__ = ["LedgerReader", "Web3Ledger"]
