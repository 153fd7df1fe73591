"""
Content-address (IPFS) metadata: gateway resolution, schema migration,
metadata cache and the Pinata upload sink.
"""

from evermark.ipfs.cache import MetadataCache, NullMetadataCache, SupabaseMetadataCache
from evermark.ipfs.gateway import GatewayResolver, parse_content_address
from evermark.ipfs.schema import SchemaVersion, detect_schema, migrate
from evermark.ipfs.upload import PinataUploader

__all__ = [
    "GatewayResolver",
    "MetadataCache",
    "NullMetadataCache",
    "PinataUploader",
    "SchemaVersion",
    "SupabaseMetadataCache",
    "detect_schema",
    "migrate",
    "parse_content_address",
]
