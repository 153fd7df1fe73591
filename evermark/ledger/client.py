"""
Ledger Reader
=============

Read access to the authoritative ledger (EvermarkNFT, Voting and Leaderboard
contracts) over EVM JSON-RPC.

The provider is rate-limited and may fail transiently. Every call carries its
own timeout, transient transport errors are retried with exponential backoff,
and every final failure is raised as LedgerReadError.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import aiohttp
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from evermark import config
from evermark.errors import ConfigurationError, LedgerReadError
from evermark.ledger.abis import (
    EVERMARK_LEADERBOARD_ABI,
    EVERMARK_NFT_ABI,
    EVERMARK_VOTING_ABI,
)
from evermark.models import ZERO_ADDRESS, LedgerRecord, VoteTally
from evermark.utils.log import get_logger

TRANSIENT_ERRORS = (asyncio.TimeoutError, aiohttp.ClientError, ConnectionError)


class LedgerReader(ABC):
    """Read-only view of the ledger used by the resolution core."""

    @abstractmethod
    async def exists(self, record_id: str) -> bool:
        ...

    @abstractmethod
    async def get_record(self, record_id: str) -> LedgerRecord:
        ...

    @abstractmethod
    async def total_supply(self) -> int:
        ...

    @abstractmethod
    async def get_current_cycle(self) -> int:
        ...

    @abstractmethod
    async def is_cycle_finalized(self, cycle_id: int) -> bool:
        ...

    @abstractmethod
    async def get_finalized_leaderboard(self, cycle_id: int, limit: int) -> List[VoteTally]:
        """Ranked tallies as published for a finalized cycle."""

    @abstractmethod
    async def get_active_record_ids(self, cycle_id: int) -> List[str]:
        """Record ids that received votes in a cycle, in ledger enumeration order."""

    @abstractmethod
    async def get_votes(self, cycle_id: int, record_id: str) -> int:
        ...


def _token_id(record_id: str) -> int:
    token_id = int(record_id)
    if token_id < 1:
        raise ValueError(f"Token ids start at 1, got {record_id}")
    return token_id


class Web3Ledger(LedgerReader):
    def __init__(
        self,
        rpc_url: Optional[str] = None,
        nft_address: Optional[str] = None,
        voting_address: Optional[str] = None,
        leaderboard_address: Optional[str] = None,
        w3: Optional[Any] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        wait=None,
        logger=None,
    ):
        self.timeout = timeout if timeout is not None else config.LEDGER_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else config.LEDGER_MAX_RETRIES
        self.wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=8)
        self.logger = logger or get_logger(__name__)

        self.w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url or config.EVERMARK_RPC_URL,
                request_kwargs={"timeout": self.timeout},
            )
        )

        nft_address = nft_address or config.EVERMARK_NFT_ADDRESS
        voting_address = voting_address or config.EVERMARK_VOTING_ADDRESS
        leaderboard_address = leaderboard_address or config.EVERMARK_LEADERBOARD_ADDRESS
        if not nft_address:
            raise ConfigurationError("EVERMARK_NFT_ADDRESS not configured")
        if not voting_address:
            raise ConfigurationError("EVERMARK_VOTING_ADDRESS not configured")

        self.nft = self._contract(nft_address, EVERMARK_NFT_ABI)
        self.voting = self._contract(voting_address, EVERMARK_VOTING_ABI)
        self.leaderboard = (
            self._contract(leaderboard_address, EVERMARK_LEADERBOARD_ABI)
            if leaderboard_address
            else None
        )

    def _contract(self, address: str, abi: list):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def _call(self, method: str, function) -> Any:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=self.wait,
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        self.logger.info(
                            "ledger_call_retry",
                            method=method,
                            attempt=attempt.retry_state.attempt_number,
                        )
                    return await asyncio.wait_for(function.call(), timeout=self.timeout)
        except Exception as e:
            self.logger.error("ledger_call_failed", method=method, error=str(e))
            raise LedgerReadError(method, e) from e

    async def exists(self, record_id: str) -> bool:
        token_id = _token_id(record_id)
        return bool(await self._call("exists", self.nft.functions.exists(token_id)))

    async def get_record(self, record_id: str) -> LedgerRecord:
        token_id = _token_id(record_id)
        title, creator, metadata_uri, creation_time, minter, referrer = await self._call(
            "evermarkData", self.nft.functions.evermarkData(token_id)
        )
        return LedgerRecord(
            title=title or "",
            creator=creator or "",
            metadata_uri=metadata_uri or "",
            creation_time=int(creation_time),
            minter=minter,
            referrer=None if not referrer or referrer == ZERO_ADDRESS else referrer,
        )

    async def total_supply(self) -> int:
        return int(await self._call("totalSupply", self.nft.functions.totalSupply()))

    async def get_current_cycle(self) -> int:
        return int(await self._call("getCurrentCycle", self.voting.functions.getCurrentCycle()))

    async def is_cycle_finalized(self, cycle_id: int) -> bool:
        info = await self._call("getCycleInfo", self.voting.functions.getCycleInfo(cycle_id))
        return bool(info[4])

    async def get_finalized_leaderboard(self, cycle_id: int, limit: int) -> List[VoteTally]:
        if self.leaderboard is not None:
            rows = await self._call(
                "getLeaderboard", self.leaderboard.functions.getLeaderboard(cycle_id, 1, limit)
            )
        else:
            rows = await self._call(
                "getTopEvermarksInCycle",
                self.voting.functions.getTopEvermarksInCycle(cycle_id, limit),
            )
        return [
            VoteTally(record_id=str(int(row[0])), cycle_id=cycle_id, votes=int(row[1]))
            for row in rows
        ]

    async def get_active_record_ids(self, cycle_id: int) -> List[str]:
        ids = await self._call(
            "getActiveEvermarksInCycle", self.voting.functions.getActiveEvermarksInCycle(cycle_id)
        )
        return [str(int(token_id)) for token_id in ids]

    async def get_votes(self, cycle_id: int, record_id: str) -> int:
        token_id = _token_id(record_id)
        return int(
            await self._call(
                "getEvermarkVotesInCycle",
                self.voting.functions.getEvermarkVotesInCycle(cycle_id, token_id),
            )
        )
