"""Abstract ledger interface and shared data models."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from eth_account.signers.local import LocalAccount
from pydantic import BaseModel
from web3 import Web3

from worldcoins.errors import LedgerDecodeError

TOKEN_DECIMALS = 18
UNIT = 10**TOKEN_DECIMALS

# Ledger-side policy. The factory enforces these; the service only reports them.
CLAIM_AMOUNT = 50 * UNIT
CREATOR_ALLOTMENT = 5_000 * UNIT
TOTAL_SUPPLY = 1_000_000 * UNIT

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

READ_FUNCTIONS = frozenset(
    {
        "isValidToken",
        "hasUserClaimed",
        "hasCreatedToken",
        "getTokenByCreator",
        "getAllTokens",
        "getTokenDetails",
        "getClaimStats",
    }
)
WRITE_FUNCTIONS = frozenset({"createToken", "claimTokens"})


def checksum(address: str) -> str:
    """Return the EIP-55 checksummed form of an address, or raise ValueError."""
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Not a valid address: {address!r}")
    return Web3.to_checksum_address(address)


class TxHandle(BaseModel):
    tx_hash: str
    function_name: str
    sender: str
    nonce: int | None = None
    submitted_at: datetime


class Receipt(BaseModel):
    tx_hash: str
    block_number: int
    block_hash: str
    status: int
    gas_used: int | None = None
    confirmations: int = 1


class TokenDetails(BaseModel):
    address: str
    name: str
    symbol: str
    total_supply: int
    max_supply: int
    claim_amount: int
    creator: str
    description: str

    @classmethod
    def from_call(cls, address: str, raw: Any) -> "TokenDetails":
        try:
            name, symbol, total_supply, max_supply, claim_amount, creator, description = raw
            return cls(
                address=address,
                name=name,
                symbol=symbol,
                total_supply=total_supply,
                max_supply=max_supply,
                claim_amount=claim_amount,
                creator=creator,
                description=description,
            )
        except (TypeError, ValueError) as e:
            raise LedgerDecodeError(f"getTokenDetails({address}) returned {raw!r}") from e


class ClaimStats(BaseModel):
    claimers: int
    total_claimed: int
    available_supply: int

    @classmethod
    def from_call(cls, address: str, raw: Any) -> "ClaimStats":
        try:
            claimers, total_claimed, available_supply = raw
            return cls(
                claimers=claimers, total_claimed=total_claimed, available_supply=available_supply
            )
        except (TypeError, ValueError) as e:
            raise LedgerDecodeError(f"getClaimStats({address}) returned {raw!r}") from e


class LedgerClient(ABC):
    """Read, submit and confirm calls against the token factory contract.

    Implementations raise RpcUnavailable / LedgerDecodeError from reads,
    SubmissionFailed from submit when nothing was sent, BroadcastUnconfirmed
    when a signed transaction may have reached the network unacknowledged, and
    ConfirmationTimeout / TransactionReverted from await_confirmation.
    Transport errors never escape raw.
    """

    @abstractmethod
    async def read(self, function_name: str, *args: Any) -> Any: ...

    @abstractmethod
    async def submit(
        self,
        function_name: str,
        args: tuple,
        account: LocalAccount,
        nonce: int | None = None,
    ) -> TxHandle: ...

    @abstractmethod
    async def await_confirmation(self, tx: TxHandle, timeout: float) -> Receipt: ...

    @abstractmethod
    async def next_nonce(self, address: str) -> int: ...

    @abstractmethod
    async def get_token_balance(self, token: str, owner: str) -> int: ...

    async def is_valid_token(self, token: str) -> bool:
        return self._as_bool("isValidToken", await self.read("isValidToken", token))

    async def has_user_claimed(self, user: str, token: str) -> bool:
        return self._as_bool("hasUserClaimed", await self.read("hasUserClaimed", user, token))

    async def has_created_token(self, user: str) -> bool:
        return self._as_bool("hasCreatedToken", await self.read("hasCreatedToken", user))

    async def get_token_by_creator(self, user: str) -> str | None:
        """Return the token created by user, or None if they have not created one."""
        token = await self.read("getTokenByCreator", user)
        if not isinstance(token, str) or not Web3.is_address(token):
            raise LedgerDecodeError(f"getTokenByCreator returned {token!r}")
        if int(token, 16) == 0:
            return None
        return checksum(token)

    async def get_all_tokens(self) -> list[str]:
        tokens = await self.read("getAllTokens")
        if not isinstance(tokens, (list, tuple)):
            raise LedgerDecodeError(f"getAllTokens returned {tokens!r}")
        try:
            return [checksum(t) for t in tokens]
        except ValueError as e:
            raise LedgerDecodeError(f"getAllTokens returned a malformed address: {e}") from e

    async def get_token_details(self, token: str) -> TokenDetails:
        return TokenDetails.from_call(token, await self.read("getTokenDetails", token))

    async def get_claim_stats(self, token: str) -> ClaimStats:
        return ClaimStats.from_call(token, await self.read("getClaimStats", token))

    @staticmethod
    def _as_bool(function_name: str, value: Any) -> bool:
        if not isinstance(value, bool):
            raise LedgerDecodeError(f"{function_name} returned non-boolean {value!r}")
        return value
