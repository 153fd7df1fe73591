"""
Evermark Configuration
======================

Loads all environment variables for the resolution core.

Environment variables should be set in .env file in project root.
Nothing here raises at import time: call validate_config() at startup.
"""

import os
from typing import Dict, List, Optional

from dotenv import load_dotenv

from evermark.errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


# ============================================================
# Supabase (Fast Store)
# ============================================================
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")  # Reads
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")  # Sync writes

FAST_STORE_TIMEOUT_SECONDS = float(os.getenv("FAST_STORE_TIMEOUT_SECONDS", "8"))
# Unset means the fast store is never considered stale
FAST_STORE_STALE_AFTER_SECONDS = _env_float("FAST_STORE_STALE_AFTER_SECONDS", None)
ENABLE_LEDGER_FALLBACK = _env_bool("ENABLE_LEDGER_FALLBACK", True)

# ============================================================
# Ledger (EVM JSON-RPC)
# ============================================================
EVERMARK_RPC_URL = os.getenv("EVERMARK_RPC_URL", "https://mainnet.base.org")
EVERMARK_NFT_ADDRESS = os.getenv("EVERMARK_NFT_ADDRESS")
EVERMARK_VOTING_ADDRESS = os.getenv("EVERMARK_VOTING_ADDRESS")
EVERMARK_LEADERBOARD_ADDRESS = os.getenv("EVERMARK_LEADERBOARD_ADDRESS")

LEDGER_TIMEOUT_SECONDS = float(os.getenv("LEDGER_TIMEOUT_SECONDS", "15"))
LEDGER_MAX_RETRIES = int(os.getenv("LEDGER_MAX_RETRIES", "3"))

# ============================================================
# IPFS Gateways (ordered, equivalent)
# ============================================================
DEFAULT_IPFS_GATEWAYS = [
    "https://gateway.pinata.cloud/ipfs/",
    "https://ipfs.io/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://dweb.link/ipfs/",
]
IPFS_GATEWAYS = _env_list("IPFS_GATEWAYS", DEFAULT_IPFS_GATEWAYS)
IPFS_TIMEOUT_SECONDS = float(os.getenv("IPFS_TIMEOUT_SECONDS", "10"))

PINATA_JWT = os.getenv("PINATA_JWT")
PINATA_API_URL = os.getenv("PINATA_API_URL", "https://api.pinata.cloud")

# ============================================================
# Batch Reads
# ============================================================
BATCH_CONCURRENCY = int(os.getenv("BATCH_CONCURRENCY", "3"))
BATCH_DELAY_SECONDS = float(os.getenv("BATCH_DELAY_SECONDS", "0.2"))

# ============================================================
# Leaderboard
# ============================================================
LEADERBOARD_TIE_BREAK = os.getenv("LEADERBOARD_TIE_BREAK", "enumeration")
LEADERBOARD_DEFAULT_LIMIT = int(os.getenv("LEADERBOARD_DEFAULT_LIMIT", "10"))

# ============================================================
# Ledger -> Fast Store Sync
# ============================================================
SYNC_MAX_PER_RUN = int(os.getenv("SYNC_MAX_PER_RUN", "10"))
SYNC_INTERVAL_SECONDS = int(os.getenv("SYNC_INTERVAL_SECONDS", "300"))

# ============================================================
# Logging
# ============================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
JSON_LOGS = _env_bool("JSON_LOGS", True)


# ============================================================
# Configuration Validation
# ============================================================

def validate_config(strict: bool = False) -> List[str]:
    """
    Validates the configuration.

    Returns the list of problems found. Missing Supabase settings are not
    fatal (the ledger becomes the only tier), missing contract addresses are.

    Args:
        strict: Raise ConfigurationError instead of returning problems

    Raises:
        ConfigurationError: When strict and at least one problem was found
    """
    errors = []

    if not EVERMARK_NFT_ADDRESS:
        errors.append("EVERMARK_NFT_ADDRESS is not set")
    if not EVERMARK_VOTING_ADDRESS:
        errors.append("EVERMARK_VOTING_ADDRESS is not set")
    if not IPFS_GATEWAYS:
        errors.append("IPFS_GATEWAYS is empty")
    if BATCH_CONCURRENCY < 1:
        errors.append("BATCH_CONCURRENCY must be a positive integer")
    if LEADERBOARD_TIE_BREAK not in ("enumeration", "record_id"):
        errors.append("LEADERBOARD_TIE_BREAK must be 'enumeration' or 'record_id'")

    if errors and strict:
        raise ConfigurationError(
            "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    return errors


def config_summary() -> Dict[str, object]:
    """
    Summary of the configuration (for debugging).
    NEVER includes secrets!
    """
    return {
        "supabase_url": SUPABASE_URL,
        "supabase_reads": "anon" if SUPABASE_ANON_KEY else "disabled",
        "rpc_url": EVERMARK_RPC_URL,
        "nft_address": EVERMARK_NFT_ADDRESS,
        "voting_address": EVERMARK_VOTING_ADDRESS,
        "leaderboard_address": EVERMARK_LEADERBOARD_ADDRESS,
        "ipfs_gateways": IPFS_GATEWAYS,
        "ipfs_timeout_seconds": IPFS_TIMEOUT_SECONDS,
        "ledger_timeout_seconds": LEDGER_TIMEOUT_SECONDS,
        "ledger_fallback": ENABLE_LEDGER_FALLBACK,
        "batch_concurrency": BATCH_CONCURRENCY,
        "batch_delay_seconds": BATCH_DELAY_SECONDS,
        "tie_break": LEADERBOARD_TIE_BREAK,
        "pinata": "enabled" if PINATA_JWT else "disabled",
    }
