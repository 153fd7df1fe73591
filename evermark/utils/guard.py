"""
Reentrancy guard for state-changing operations.

An explicit Idle/InFlight state machine. Acquisition is a compare-and-set
under a lock; release always happens in the context manager's finally block,
so an exception inside the guarded body still returns the guard to Idle.

Usage:
    guard = InFlightGuard("ledger_sync")
    async with guard.hold():
        await do_sync()
"""

import threading
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator

from evermark.errors import OperationInFlight


class GuardState(Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


class InFlightGuard:
    def __init__(self, operation: str):
        self.operation = operation
        self._state = GuardState.IDLE
        # Held only for the compare-and-set, never across an await
        self._lock = threading.Lock()

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state is GuardState.IN_FLIGHT

    def try_acquire(self) -> bool:
        """Move Idle -> InFlight. Returns False if already in flight."""
        with self._lock:
            if self._state is not GuardState.IDLE:
                return False
            self._state = GuardState.IN_FLIGHT
            return True

    def release(self) -> None:
        with self._lock:
            self._state = GuardState.IDLE

    @asynccontextmanager
    async def hold(self) -> AsyncIterator["InFlightGuard"]:
        if not self.try_acquire():
            raise OperationInFlight(self.operation)
        try:
            yield self
        finally:
            self.release()
