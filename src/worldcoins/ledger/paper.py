"""Paper ledger: an in-process token factory for local runs and tests."""

import asyncio
import json
import logging
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from eth_account.signers.local import LocalAccount
from web3 import Web3

from worldcoins.config import PAPER_DIR
from worldcoins.errors import (
    BroadcastUnconfirmed,
    ConfirmationTimeout,
    LedgerDecodeError,
    RpcUnavailable,
    SubmissionFailed,
    TransactionReverted,
)
from worldcoins.ledger.base import (
    CLAIM_AMOUNT,
    CREATOR_ALLOTMENT,
    READ_FUNCTIONS,
    TOTAL_SUPPLY,
    WRITE_FUNCTIONS,
    ZERO_ADDRESS,
    LedgerClient,
    Receipt,
    TxHandle,
    checksum,
)

logger = logging.getLogger(__name__)

STATE_FILE = PAPER_DIR / "ledger.json"


class PaperLedgerState:
    """Factory storage plus the mempool and receipts, persisted to disk."""

    def __init__(self) -> None:
        self.block_number: int = 0
        self.tokens: dict[str, dict] = {}  # token -> details, claimers, balances
        self.token_order: list[str] = []
        self.creators: dict[str, str] = {}  # creator -> token
        self.nonces: dict[str, int] = {}  # sender -> next nonce
        self.mempool: list[dict] = []  # txs waiting to be mined
        self.receipts: dict[str, dict] = {}  # tx_hash -> receipt fields

    def to_dict(self) -> dict:
        return {
            "block_number": self.block_number,
            "tokens": self.tokens,
            "token_order": self.token_order,
            "creators": self.creators,
            "nonces": self.nonces,
            "mempool": self.mempool,
            "receipts": self.receipts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PaperLedgerState":
        state = cls()
        state.block_number = data.get("block_number", 0)
        state.tokens = data.get("tokens", {})
        state.token_order = data.get("token_order", [])
        state.creators = data.get("creators", {})
        state.nonces = data.get("nonces", {})
        state.mempool = data.get("mempool", [])
        state.receipts = data.get("receipts", {})
        return state


class PaperLedger(LedgerClient):
    """Fully functional simulated factory.

    - One token per creator; creator receives 5,000 of a 1,000,000 max supply
    - Each address may claim 50 of any token once, never its own token
    - Transactions sit in a mempool for block_time seconds, then mine
    - Receipts become visible receipt_delay seconds after mining
    - Persists state to ~/.worldcoins/paper/ledger.json when state_path is set

    Set `unavailable` to simulate an unreachable RPC endpoint,
    `reject_submissions` to a message to make every submit fail, and
    `drop_broadcast_acks` to accept transactions but lose the acknowledgement.
    """

    def __init__(
        self,
        state_path: Path | None = None,
        *,
        block_time: float = 0.0,
        receipt_delay: float = 0.0,
        poll_interval: float = 0.01,
    ) -> None:
        self.state_path = state_path
        self.block_time = block_time
        self.receipt_delay = receipt_delay
        self.poll_interval = poll_interval
        self.unavailable = False
        self.reject_submissions: str | None = None
        self.drop_broadcast_acks = False
        self.submissions: list[TxHandle] = []
        self.state = self._load_state()

    def _load_state(self) -> PaperLedgerState:
        if self.state_path and self.state_path.exists():
            with open(self.state_path) as f:
                return PaperLedgerState.from_dict(json.load(f))
        return PaperLedgerState()

    def _save_state(self) -> None:
        if self.state_path is None:
            return
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_path, "w") as f:
            json.dump(self.state.to_dict(), f, indent=2)

    def _check_available(self, label: str) -> None:
        if self.unavailable:
            raise RpcUnavailable(f"{label}: paper ledger is offline")

    def _mine(self) -> None:
        """Mine every mempool transaction whose block time has elapsed."""
        now = time.time()
        ready = [tx for tx in self.state.mempool if tx["mine_at"] <= now]
        if not ready:
            return
        for tx in ready:
            self.state.mempool.remove(tx)
            self.state.block_number += 1
            reason = self._execute(tx)
            self.state.receipts[tx["tx_hash"]] = {
                "block_number": self.state.block_number,
                "block_hash": Web3.to_hex(Web3.keccak(text=f"block:{self.state.block_number}")),
                "status": 0 if reason else 1,
                "reason": reason,
                "visible_at": now + self.receipt_delay,
            }
            logger.debug(
                "Mined %s in block %d (%s)",
                tx["tx_hash"],
                self.state.block_number,
                reason or "ok",
            )
        self._save_state()

    def _execute(self, tx: dict) -> str | None:
        """Apply a transaction to factory storage. Return a revert reason or None."""
        if tx["function_name"] == "createToken":
            creator, (name, symbol, description) = tx["args"]
            return self._create_token(creator, name, symbol, description, tx["tx_hash"])
        user, token = tx["args"]
        return self._claim_tokens(user, token)

    def _create_token(
        self, creator: str, name: str, symbol: str, description: str, tx_hash: str
    ) -> str | None:
        if creator in self.state.creators:
            return "Already created a token"
        if not name or not symbol:
            return "Name and symbol required"
        token = checksum(Web3.to_hex(Web3.keccak(text=f"token:{tx_hash}")[-20:]))
        self.state.tokens[token] = {
            "name": name,
            "symbol": symbol,
            "description": description,
            "creator": creator,
            "total_supply": CREATOR_ALLOTMENT,
            "max_supply": TOTAL_SUPPLY,
            "claim_amount": CLAIM_AMOUNT,
            "total_claimed": 0,
            "claimers": [],
            "balances": {creator: CREATOR_ALLOTMENT},
        }
        self.state.token_order.append(token)
        self.state.creators[creator] = token
        return None

    def _claim_tokens(self, user: str, token: str) -> str | None:
        info = self.state.tokens.get(token)
        if info is None:
            return "Invalid token"
        if user in info["claimers"]:
            return "Already claimed"
        if user == info["creator"]:
            return "Creator cannot claim own token"
        if info["total_supply"] + info["claim_amount"] > info["max_supply"]:
            return "Claim supply exhausted"
        info["claimers"].append(user)
        info["total_claimed"] += info["claim_amount"]
        info["total_supply"] += info["claim_amount"]
        info["balances"][user] = info["balances"].get(user, 0) + info["claim_amount"]
        return None

    async def read(self, function_name: str, *args: Any) -> Any:
        if function_name not in READ_FUNCTIONS:
            raise ValueError(f"{function_name} is not a factory read function")
        self._check_available(function_name)
        self._mine()
        try:
            addresses = [checksum(a) for a in args]
        except ValueError as e:
            raise LedgerDecodeError(f"{function_name}: {e}") from e

        tokens = self.state.tokens
        if function_name == "isValidToken":
            return addresses[0] in tokens
        if function_name == "hasUserClaimed":
            user, token = addresses
            return token in tokens and user in tokens[token]["claimers"]
        if function_name == "hasCreatedToken":
            return addresses[0] in self.state.creators
        if function_name == "getTokenByCreator":
            return self.state.creators.get(addresses[0], ZERO_ADDRESS)
        if function_name == "getAllTokens":
            return list(self.state.token_order)

        token = addresses[0]
        if token not in tokens:
            raise LedgerDecodeError(f"{function_name}({token}) reverted: Invalid token")
        info = tokens[token]
        if function_name == "getTokenDetails":
            return (
                info["name"],
                info["symbol"],
                info["total_supply"],
                info["max_supply"],
                info["claim_amount"],
                info["creator"],
                info["description"],
            )
        return (
            len(info["claimers"]),
            info["total_claimed"],
            info["max_supply"] - info["total_supply"],
        )

    async def next_nonce(self, address: str) -> int:
        self._check_available("eth_getTransactionCount")
        return self.state.nonces.get(checksum(address), 0)

    async def get_token_balance(self, token: str, owner: str) -> int:
        self._check_available("balanceOf")
        self._mine()
        info = self.state.tokens.get(checksum(token))
        if info is None:
            raise LedgerDecodeError(f"balanceOf: {token} is not a deployed token")
        return info["balances"].get(checksum(owner), 0)

    async def submit(
        self,
        function_name: str,
        args: tuple,
        account: LocalAccount,
        nonce: int | None = None,
    ) -> TxHandle:
        if function_name not in WRITE_FUNCTIONS:
            raise ValueError(f"{function_name} is not a factory write function")
        if self.unavailable:
            raise SubmissionFailed(f"{function_name}: paper ledger is offline")
        if self.reject_submissions:
            raise SubmissionFailed(f"{function_name}: {self.reject_submissions}")

        sender = account.address
        expected = self.state.nonces.get(sender, 0)
        if nonce is None:
            nonce = expected
        if nonce != expected:
            direction = "low" if nonce < expected else "high"
            raise SubmissionFailed(f"nonce too {direction}: got {nonce}, expected {expected}")

        try:
            if function_name == "createToken":
                creator, (name, symbol, description) = args
                tx_args = [checksum(creator), [str(name), str(symbol), str(description)]]
            else:
                user, token = args
                tx_args = [checksum(user), checksum(token)]
        except (TypeError, ValueError) as e:
            raise SubmissionFailed(f"{function_name}: invalid arguments {args!r}") from e

        now = datetime.now(UTC)
        tx_hash = "0x" + uuid.uuid4().hex + uuid.uuid4().hex
        self.state.nonces[sender] = expected + 1
        self.state.mempool.append(
            {
                "tx_hash": tx_hash,
                "function_name": function_name,
                "args": tx_args,
                "sender": sender,
                "nonce": nonce,
                "mine_at": time.time() + self.block_time,
            }
        )
        self._save_state()

        handle = TxHandle(
            tx_hash=tx_hash,
            function_name=function_name,
            sender=sender,
            nonce=nonce,
            submitted_at=now,
        )
        self.submissions.append(handle)
        if self.drop_broadcast_acks:
            raise BroadcastUnconfirmed(handle, "connection reset after send")
        return handle

    async def await_confirmation(self, tx: TxHandle, timeout: float) -> Receipt:
        deadline = time.monotonic() + timeout
        while True:
            self._mine()
            receipt = self.state.receipts.get(tx.tx_hash)
            if receipt is not None and receipt["visible_at"] <= time.time():
                if receipt["status"] == 0:
                    raise TransactionReverted(
                        tx.tx_hash, receipt["reason"], receipt["block_number"]
                    )
                return Receipt(
                    tx_hash=tx.tx_hash,
                    block_number=receipt["block_number"],
                    block_hash=receipt["block_hash"],
                    status=1,
                    confirmations=self.state.block_number - receipt["block_number"] + 1,
                )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ConfirmationTimeout(tx.tx_hash, timeout)
            await asyncio.sleep(min(self.poll_interval, remaining))
