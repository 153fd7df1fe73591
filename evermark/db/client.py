"""
Supabase Client Management
==========================

Lazily initialized async Supabase clients with read/write separation.

SECURITY PRINCIPLE (Least Privilege):
- Reads use the ANON key (respects RLS, public rows only)
- Writes (ledger sync, metadata cache) use the SERVICE_ROLE key

Both clients release the event loop while waiting for Supabase HTTP
responses, so a slow fast store never blocks ledger or gateway reads.
"""

import asyncio
from typing import Optional

from supabase import AsyncClient, create_async_client

from evermark import config
from evermark.errors import ConfigurationError
from evermark.utils.log import get_logger

logger = get_logger(__name__)

# ============================================================
# Async Singleton Clients (lazily initialized)
# ============================================================
_async_read_client: Optional[AsyncClient] = None
_async_write_client: Optional[AsyncClient] = None
_async_lock = asyncio.Lock()


def is_configured() -> bool:
    """True when the fast store can be reached at all."""
    return bool(config.SUPABASE_URL and (config.SUPABASE_ANON_KEY or config.SUPABASE_SERVICE_ROLE_KEY))


async def get_async_read_client() -> AsyncClient:
    """
    Get async Supabase client for READ operations (uses ANON key).
    Falls back to the SERVICE_ROLE key when no ANON key is set.
    """
    global _async_read_client

    if _async_read_client is not None:
        return _async_read_client

    async with _async_lock:
        if _async_read_client is not None:
            return _async_read_client

        if not config.SUPABASE_URL:
            raise ConfigurationError("SUPABASE_URL not configured")

        if not config.SUPABASE_ANON_KEY:
            logger.warning("supabase_anon_key_missing", fallback="service_role")
            if not config.SUPABASE_SERVICE_ROLE_KEY:
                raise ConfigurationError("No Supabase key configured")
            _async_read_client = await create_async_client(
                config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY
            )
        else:
            _async_read_client = await create_async_client(
                config.SUPABASE_URL, config.SUPABASE_ANON_KEY
            )
        logger.info("supabase_client_initialized", role="read")

        return _async_read_client


async def get_async_write_client() -> AsyncClient:
    """
    Get async Supabase client for WRITE operations (uses SERVICE_ROLE key).
    """
    global _async_write_client

    if _async_write_client is not None:
        return _async_write_client

    async with _async_lock:
        if _async_write_client is not None:
            return _async_write_client

        if not config.SUPABASE_URL:
            raise ConfigurationError("SUPABASE_URL not configured")

        if not config.SUPABASE_SERVICE_ROLE_KEY:
            raise ConfigurationError("SUPABASE_SERVICE_ROLE_KEY not configured")

        _async_write_client = await create_async_client(
            config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY
        )
        logger.info("supabase_client_initialized", role="write")

        return _async_write_client
