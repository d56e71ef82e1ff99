"""Exception hierarchy and the error taxonomy surfaced to callers."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from worldcoins.ledger.base import TxHandle


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    PROOF_INVALID = "proof_invalid"
    ENTITLEMENT_VIOLATION = "entitlement_violation"
    INFRASTRUCTURE_UNAVAILABLE = "infrastructure_unavailable"
    SUBMISSION_FAILED = "submission_failed"
    AMBIGUOUS = "ambiguous"
    REVERTED = "reverted"
    CONFIGURATION = "configuration"


class WorldcoinsError(Exception):
    """Base class for all errors raised by this package."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE_UNAVAILABLE


class ConfigurationError(WorldcoinsError):
    """A required operating parameter is missing or malformed."""

    kind = ErrorKind.CONFIGURATION


class BadRequestError(WorldcoinsError):
    """An inbound action payload is missing fields or is malformed."""

    kind = ErrorKind.BAD_REQUEST


class RpcUnavailable(WorldcoinsError):
    """The ledger RPC endpoint could not be reached or returned a transport error."""


class LedgerDecodeError(WorldcoinsError):
    """A ledger read returned data that does not match the contract interface."""


class VerifierUnreachable(WorldcoinsError):
    """The identity-proof verifier could not be reached."""


class SubmissionFailed(WorldcoinsError):
    """A state-changing transaction was rejected before the network accepted it."""

    kind = ErrorKind.SUBMISSION_FAILED


class BroadcastUnconfirmed(WorldcoinsError):
    """A signed transaction was sent but the node's acknowledgement was lost.

    It may already be in the mempool. The handle carries the locally computed
    hash so the write can be awaited and reconciled like any submitted one.
    """

    kind = ErrorKind.AMBIGUOUS

    def __init__(self, handle: TxHandle, cause: str) -> None:
        super().__init__(f"Broadcast of {handle.tx_hash} unacknowledged: {cause}")
        self.handle = handle
        self.cause = cause


class ConfirmationTimeout(WorldcoinsError):
    """A submitted transaction was not finalized within the timeout.

    The write may still land; callers must re-read entitlement state before
    deciding anything.
    """

    kind = ErrorKind.AMBIGUOUS

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(f"Transaction {tx_hash} not confirmed within {timeout:g}s")
        self.tx_hash = tx_hash
        self.timeout = timeout


class TransactionReverted(WorldcoinsError):
    """The ledger executed the transaction and rejected it."""

    kind = ErrorKind.REVERTED

    def __init__(
        self, tx_hash: str, reason: str | None = None, block_number: int | None = None
    ) -> None:
        super().__init__(f"Transaction {tx_hash} reverted: {reason or 'no reason given'}")
        self.tx_hash = tx_hash
        self.reason = reason
        self.block_number = block_number
