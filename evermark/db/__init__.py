"""Fast store (Supabase) access."""

from evermark.db.fast_store import FastStore, NullFastStore, SupabaseFastStore

__all__ = ["FastStore", "NullFastStore", "SupabaseFastStore"]
