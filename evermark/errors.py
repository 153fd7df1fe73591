"""
Typed exceptions for the resolution core.

Recoverable conditions (GatewayExhausted, PartialBatchFailure, NotFound) are
logged or modelled as None/empty values by the components; the classes exist
so that the condition has a name and an error code wherever it is reported.
"""

from typing import List, Optional, Sequence


class EvermarkError(Exception):
    """Base exception for all resolution core errors."""

    error_code = "EVERMARK_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)


class ConfigurationError(EvermarkError):
    """Raised when required configuration is missing or invalid."""

    error_code = "CONFIGURATION"


class InvalidAddress(EvermarkError):
    """Raised when a content-address fails the format check. Never retried."""

    error_code = "INVALID_ADDRESS"

    def __init__(self, message: str, address: Optional[str] = None):
        self.address = address
        super().__init__(message)


class NotFound(EvermarkError):
    """
    A record does not exist on the ledger.

    The core returns None for absent records; the CLI reports absence with
    this error, and callers that need an exception form can raise it.
    """

    error_code = "NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record {record_id} does not exist")


class GatewayExhausted(EvermarkError):
    """Every configured gateway failed for one content-address."""

    error_code = "GATEWAY_EXHAUSTED"

    def __init__(self, content_hash: str, failures: Sequence[str]):
        self.content_hash = content_hash
        self.failures: List[str] = list(failures)
        super().__init__(
            f"All {len(self.failures)} gateways failed for {content_hash}: "
            + "; ".join(self.failures)
        )


class LedgerReadError(EvermarkError):
    """A read against the authoritative ledger failed after retries."""

    error_code = "LEDGER_READ"

    def __init__(self, method: str, cause: Optional[BaseException] = None):
        self.method = method
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Ledger read '{method}' failed{detail}")


class FastStoreError(EvermarkError):
    """The fast store is unreachable or rejected the query."""

    error_code = "FAST_STORE"


class PartialBatchFailure(EvermarkError):
    """One or more items of a batch failed; their positions hold None."""

    error_code = "PARTIAL_BATCH"

    def __init__(self, failed_ids: Sequence[str], total: int):
        self.failed_ids: List[str] = list(failed_ids)
        self.total = total
        super().__init__(f"{len(self.failed_ids)}/{total} batch items failed")


class OperationInFlight(EvermarkError):
    """A guarded operation was invoked while a previous call is still running."""

    error_code = "IN_FLIGHT"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation '{operation}' is already in flight")
