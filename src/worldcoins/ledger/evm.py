"""World Chain ledger adapter built on web3.py."""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    TransactionNotFound,
    Web3RPCError,
)

from worldcoins.errors import (
    BroadcastUnconfirmed,
    ConfirmationTimeout,
    LedgerDecodeError,
    RpcUnavailable,
    SubmissionFailed,
    TransactionReverted,
)
from worldcoins.ledger.abi import ERC20_ABI, FACTORY_ABI
from worldcoins.ledger.base import (
    READ_FUNCTIONS,
    WRITE_FUNCTIONS,
    LedgerClient,
    Receipt,
    TxHandle,
    checksum,
)

logger = logging.getLogger(__name__)


def revert_reason(error: ContractLogicError) -> str:
    """Extract the human-readable reason from a contract revert."""
    message = getattr(error, "message", None) or str(error)
    prefix = "execution reverted: "
    if message.startswith(prefix):
        return message[len(prefix) :]
    return message


class EvmLedgerClient(LedgerClient):
    """Factory contract client over JSON-RPC.

    - Reads are eth_call against the latest block, bounded by rpc_timeout
    - Writes are signed locally with the operator account and sent raw; the
      hash is known before the send, so a lost acknowledgement stays traceable
    - Confirmation polls for the receipt, then for confirmation_depth blocks
    """

    def __init__(
        self,
        rpc_url: str,
        factory_address: str,
        chain_id: int,
        *,
        confirmation_depth: int = 1,
        poll_interval: float = 1.0,
        rpc_timeout: float = 10.0,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.factory_address = checksum(factory_address)
        self.chain_id = chain_id
        self.confirmation_depth = max(1, confirmation_depth)
        self.poll_interval = poll_interval
        self.rpc_timeout = rpc_timeout
        self.factory = self.w3.eth.contract(address=self.factory_address, abi=FACTORY_ABI)

    async def _rpc(self, label: str, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, self.rpc_timeout)
        except (BadFunctionCallOutput, ContractLogicError) as e:
            raise LedgerDecodeError(f"{label}: {e}") from e
        except TimeoutError as e:
            raise RpcUnavailable(f"{label}: no response within {self.rpc_timeout:g}s") from e
        except Exception as e:
            raise RpcUnavailable(f"{label}: {e}") from e

    async def read(self, function_name: str, *args: Any) -> Any:
        if function_name not in READ_FUNCTIONS:
            raise ValueError(f"{function_name} is not a factory read function")
        call = getattr(self.factory.functions, function_name)(*args)
        return await self._rpc(function_name, call.call())

    async def next_nonce(self, address: str) -> int:
        return await self._rpc(
            "eth_getTransactionCount",
            self.w3.eth.get_transaction_count(checksum(address), "pending"),
        )

    async def get_token_balance(self, token: str, owner: str) -> int:
        erc20 = self.w3.eth.contract(address=checksum(token), abi=ERC20_ABI)
        return await self._rpc("balanceOf", erc20.functions.balanceOf(checksum(owner)).call())

    async def submit(
        self,
        function_name: str,
        args: tuple,
        account: LocalAccount,
        nonce: int | None = None,
    ) -> TxHandle:
        if function_name not in WRITE_FUNCTIONS:
            raise ValueError(f"{function_name} is not a factory write function")
        try:
            call = getattr(self.factory.functions, function_name)(*args)
            if nonce is None:
                nonce = await self.next_nonce(account.address)
            tx = await call.build_transaction(
                {"from": account.address, "nonce": nonce, "chainId": self.chain_id}
            )
            signed = account.sign_transaction(tx)
        except ContractLogicError as e:
            raise SubmissionFailed(f"{function_name} would revert: {revert_reason(e)}") from e
        except Exception as e:
            raise SubmissionFailed(f"{function_name}: {e}") from e

        handle = TxHandle(
            tx_hash=Web3.to_hex(signed.hash),
            function_name=function_name,
            sender=account.address,
            nonce=nonce,
            submitted_at=datetime.now(UTC),
        )
        try:
            await asyncio.wait_for(
                self.w3.eth.send_raw_transaction(signed.raw_transaction), self.rpc_timeout
            )
        except (Web3RPCError, ValueError) as e:
            # the node answered and refused: nothing entered the mempool
            raise SubmissionFailed(f"{function_name}: {e}") from e
        except TimeoutError as e:
            raise BroadcastUnconfirmed(handle, f"no response within {self.rpc_timeout:g}s") from e
        except Exception as e:
            raise BroadcastUnconfirmed(handle, str(e) or type(e).__name__) from e

        logger.info("Sent %s tx %s (nonce %s)", function_name, handle.tx_hash, nonce)
        return handle

    async def await_confirmation(self, tx: TxHandle, timeout: float) -> Receipt:
        try:
            return await asyncio.wait_for(self._wait_for_finality(tx), timeout)
        except TimeoutError as e:
            raise ConfirmationTimeout(tx.tx_hash, timeout) from e

    async def _wait_for_finality(self, tx: TxHandle) -> Receipt:
        while True:
            receipt = await self._poll_receipt(tx.tx_hash)
            if receipt is not None:
                if receipt["status"] == 0:
                    reason = await self._replay_for_reason(receipt)
                    raise TransactionReverted(tx.tx_hash, reason, receipt["blockNumber"])
                confirmations = await self._confirmations(receipt["blockNumber"])
                if confirmations >= self.confirmation_depth:
                    return Receipt(
                        tx_hash=tx.tx_hash,
                        block_number=receipt["blockNumber"],
                        block_hash=Web3.to_hex(receipt["blockHash"]),
                        status=receipt["status"],
                        gas_used=receipt.get("gasUsed"),
                        confirmations=confirmations,
                    )
            await asyncio.sleep(self.poll_interval)

    async def _poll_receipt(self, tx_hash: str) -> Any:
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            # keep polling; the caller's timeout bounds the wait
            logger.warning("Receipt poll for %s failed: %s", tx_hash, e)
            return None

    async def _confirmations(self, block_number: int) -> int:
        try:
            head = await self.w3.eth.block_number
        except Exception as e:
            logger.warning("Block number poll failed: %s", e)
            return 0
        return head - block_number + 1

    async def _replay_for_reason(self, receipt: Any) -> str | None:
        """Re-run a reverted transaction as a call to recover its revert reason."""
        try:
            original = await self.w3.eth.get_transaction(receipt["transactionHash"])
            await self.w3.eth.call(
                {
                    "from": original["from"],
                    "to": original["to"],
                    "data": original["input"],
                    "value": original["value"],
                },
                receipt["blockNumber"] - 1,
            )
        except ContractLogicError as e:
            return revert_reason(e)
        except Exception as e:
            logger.debug("Could not replay %s for revert reason: %s", receipt["transactionHash"], e)
        return None
