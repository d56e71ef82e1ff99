"""Signing authority: serializes every write made with the operator key."""

import asyncio
import logging

from eth_account.signers.local import LocalAccount

from worldcoins.errors import (
    BroadcastUnconfirmed,
    LedgerDecodeError,
    RpcUnavailable,
    SubmissionFailed,
)
from worldcoins.ledger.base import LedgerClient, TxHandle

logger = logging.getLogger(__name__)


class SigningAuthority:
    """Own the operator account and hand out nonces one submission at a time.

    Only one submission is in flight per key. The next nonce is read from the
    ledger once, then allocated locally; any failed submission drops the
    cached value so the next one re-reads the pending count.
    """

    def __init__(self, account: LocalAccount, ledger: LedgerClient) -> None:
        self._account = account
        self._ledger = ledger
        self._lock = asyncio.Lock()
        self._next_nonce: int | None = None

    @property
    def address(self) -> str:
        return self._account.address

    async def submit(self, function_name: str, args: tuple) -> TxHandle:
        async with self._lock:
            if self._next_nonce is None:
                try:
                    self._next_nonce = await self._ledger.next_nonce(self.address)
                except (RpcUnavailable, LedgerDecodeError) as e:
                    raise SubmissionFailed(f"Could not read operator nonce: {e}") from e
            nonce = self._next_nonce
            try:
                handle = await self._ledger.submit(
                    function_name, args, self._account, nonce=nonce
                )
            except (SubmissionFailed, BroadcastUnconfirmed):
                self._next_nonce = None
                raise
            self._next_nonce = nonce + 1
            logger.debug("Submitted %s as %s nonce %d", function_name, self.address, nonce)
            return handle
