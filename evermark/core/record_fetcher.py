"""
Record Fetcher
==============

Builds one hydrated ContentRecord from the ledger core tuple plus its
content-address metadata.

A record that does not exist is None, not an error. A record whose ledger
tuple has an empty title or content-address is malformed: it is logged and
also returned as None. Ledger read failures propagate as LedgerReadError.
"""

from typing import Optional

from evermark.ipfs.gateway import GatewayResolver
from evermark.ledger.client import LedgerReader
from evermark.models import ContentRecord
from evermark.utils.log import get_logger


class RecordFetcher:
    def __init__(self, ledger: LedgerReader, resolver: GatewayResolver, logger=None):
        self.ledger = ledger
        self.resolver = resolver
        self.logger = logger or get_logger(__name__)

    async def fetch_record(self, record_id: str) -> Optional[ContentRecord]:
        if not await self.ledger.exists(record_id):
            self.logger.debug("record_not_found", record_id=record_id)
            return None

        core = await self.ledger.get_record(record_id)
        if not core.title or not core.metadata_uri:
            self.logger.warning(
                "malformed_record",
                record_id=record_id,
                has_title=bool(core.title),
                has_metadata_uri=bool(core.metadata_uri),
            )
            return None

        metadata = await self.resolver.resolve(core.metadata_uri)

        return ContentRecord(
            id=str(record_id),
            title=core.title,
            author=core.creator,
            creator=core.minter,
            description=metadata.description,
            source_url=metadata.source_url,
            image_url=self.resolver.to_gateway_url(metadata.image),
            metadata_uri=core.metadata_uri,
            creation_time=core.creation_time,
            referrer=core.referrer,
        )
