"""
Evermark Index
==============

Content resolution and leaderboard aggregation for Evermarks.

Features:
- Supabase-first reads with ledger fallback
- Bounded-concurrency batch reads of on-chain records
- Multi-gateway IPFS metadata resolution with failover
- Per-cycle leaderboard ranking from cached or on-chain tallies
"""

__version__ = "1.0.0"
__author__ = "Evermark Team"
