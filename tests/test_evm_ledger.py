"""Tests for the web3 ledger adapter against an in-memory node."""

import asyncio
from datetime import UTC, datetime

import pytest
from eth_account import Account
from web3 import Web3
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
from worldcoins.ledger.abi import FACTORY_ABI
from worldcoins.ledger.base import TxHandle
from worldcoins.ledger.evm import EvmLedgerClient, revert_reason

FACTORY = Web3.to_checksum_address("0x" + "fa" * 20)
ALICE = Web3.to_checksum_address("0x" + "a1" * 20)
CHAIN_ID = 4801


class FakeCall:
    def __init__(self, eth: "FakeEth", name: str, args: tuple) -> None:
        self.eth = eth
        self.name = name
        self.args = args

    async def call(self):
        result = self.eth.reads[self.name]
        if isinstance(result, Exception):
            raise result
        return result

    async def build_transaction(self, params: dict) -> dict:
        if self.eth.build_error is not None:
            raise self.eth.build_error
        return {
            "to": FACTORY,
            "data": b"\x12\x34",
            "value": 0,
            "gas": 200_000,
            "gasPrice": 10**9,
            "nonce": params["nonce"],
            "chainId": params["chainId"],
        }


class FakeFunctions:
    def __init__(self, eth: "FakeEth") -> None:
        self._eth = eth

    def __getattr__(self, name: str):
        return lambda *args: FakeCall(self._eth, name, args)


class FakeContract:
    def __init__(self, eth: "FakeEth") -> None:
        self.functions = FakeFunctions(eth)


class FakeEth:
    """Just enough of AsyncWeb3.eth for the adapter, with knobs for failures."""

    def __init__(self) -> None:
        self.reads: dict = {}
        self.build_error: Exception | None = None
        self.send_error: Exception | None = None
        self.send_hangs = False
        self.sent: list[bytes] = []
        self.receipts: dict[str, dict] = {}
        self.receipt_errors: list[Exception] = []
        self.receipt_polls = 0
        self.head = 0
        self.mining = False
        self.replayed_at: list[int] = []

    def contract(self, address: str, abi: list):
        return FakeContract(self)

    async def get_transaction_count(self, address: str, block: str) -> int:
        return 5

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        self.sent.append(bytes(raw))
        if self.send_hangs:
            await asyncio.sleep(10)
        if self.send_error is not None:
            raise self.send_error
        return Web3.keccak(raw)

    async def get_transaction_receipt(self, tx_hash: str) -> dict:
        self.receipt_polls += 1
        if self.receipt_errors:
            raise self.receipt_errors.pop(0)
        if tx_hash not in self.receipts:
            raise TransactionNotFound(f"Transaction {tx_hash} not found")
        return self.receipts[tx_hash]

    async def _block_number(self) -> int:
        if self.mining:
            self.head += 1
        return self.head

    @property
    def block_number(self):
        return self._block_number()

    async def get_transaction(self, tx_hash) -> dict:
        return {"from": ALICE, "to": FACTORY, "input": "0x1234", "value": 0}

    async def call(self, tx: dict, block_identifier: int):
        self.replayed_at.append(block_identifier)
        raise ContractLogicError("execution reverted: Already claimed")


class FakeWeb3:
    def __init__(self) -> None:
        self.eth = FakeEth()


@pytest.fixture
def w3() -> FakeWeb3:
    return FakeWeb3()


@pytest.fixture
def client(w3: FakeWeb3) -> EvmLedgerClient:
    return EvmLedgerClient(
        "http://localhost:8545",
        FACTORY,
        CHAIN_ID,
        w3=w3,
        poll_interval=0.01,
        rpc_timeout=0.1,
    )


def tx_handle(tx_hash: str = "0x" + "ee" * 32) -> TxHandle:
    return TxHandle(
        tx_hash=tx_hash,
        function_name="claimTokens",
        sender=ALICE,
        nonce=0,
        submitted_at=datetime.now(UTC),
    )


def receipt(tx_hash: str, block: int, status: int = 1) -> dict:
    return {
        "transactionHash": Web3.to_bytes(hexstr=tx_hash),
        "blockNumber": block,
        "blockHash": b"\x01" * 32,
        "status": status,
        "gasUsed": 51_000,
    }


class TestReads:
    @pytest.mark.asyncio
    async def test_read_returns_call_result(self, w3: FakeWeb3, client: EvmLedgerClient):
        w3.eth.reads["hasCreatedToken"] = True
        assert await client.read("hasCreatedToken", ALICE) is True

    @pytest.mark.asyncio
    async def test_transport_error_is_rpc_unavailable(
        self, w3: FakeWeb3, client: EvmLedgerClient
    ):
        w3.eth.reads["hasCreatedToken"] = ConnectionError("connection refused")
        with pytest.raises(RpcUnavailable, match="hasCreatedToken"):
            await client.read("hasCreatedToken", ALICE)

    @pytest.mark.asyncio
    async def test_contract_error_is_decode_error(self, w3: FakeWeb3, client: EvmLedgerClient):
        w3.eth.reads["getTokenDetails"] = ContractLogicError("execution reverted")
        with pytest.raises(LedgerDecodeError):
            await client.read("getTokenDetails", ALICE)

    @pytest.mark.asyncio
    async def test_bad_output_is_decode_error(self, w3: FakeWeb3, client: EvmLedgerClient):
        w3.eth.reads["getAllTokens"] = BadFunctionCallOutput("could not decode")
        with pytest.raises(LedgerDecodeError):
            await client.read("getAllTokens")

    @pytest.mark.asyncio
    async def test_unknown_read_function(self, client: EvmLedgerClient):
        with pytest.raises(ValueError):
            await client.read("createToken", ALICE)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_hash_is_the_signed_transaction(self, w3: FakeWeb3, client: EvmLedgerClient):
        handle = await client.submit("claimTokens", (ALICE, FACTORY), Account.create())
        assert len(w3.eth.sent) == 1
        assert handle.tx_hash == Web3.to_hex(Web3.keccak(w3.eth.sent[0]))
        assert handle.nonce == 5
        assert handle.function_name == "claimTokens"

    @pytest.mark.asyncio
    async def test_node_refusal_is_submission_failed(self, w3: FakeWeb3, client: EvmLedgerClient):
        w3.eth.send_error = Web3RPCError("nonce too low")
        with pytest.raises(SubmissionFailed, match="nonce too low"):
            await client.submit("claimTokens", (ALICE, FACTORY), Account.create(), nonce=0)

    @pytest.mark.asyncio
    async def test_would_revert_is_not_sent(self, w3: FakeWeb3, client: EvmLedgerClient):
        w3.eth.build_error = ContractLogicError("execution reverted: Already created")
        with pytest.raises(SubmissionFailed, match="would revert"):
            await client.submit("createToken", (ALICE, ("A", "A", "")), Account.create())
        assert w3.eth.sent == []

    @pytest.mark.asyncio
    async def test_send_timeout_keeps_the_hash(self, w3: FakeWeb3, client: EvmLedgerClient):
        w3.eth.send_hangs = True
        with pytest.raises(BroadcastUnconfirmed) as exc_info:
            await client.submit("claimTokens", (ALICE, FACTORY), Account.create(), nonce=3)
        handle = exc_info.value.handle
        assert handle.tx_hash == Web3.to_hex(Web3.keccak(w3.eth.sent[0]))
        assert handle.nonce == 3
        assert "no response" in exc_info.value.cause

    @pytest.mark.asyncio
    async def test_dropped_connection_after_send(self, w3: FakeWeb3, client: EvmLedgerClient):
        w3.eth.send_error = ConnectionResetError("connection reset by peer")
        with pytest.raises(BroadcastUnconfirmed) as exc_info:
            await client.submit("claimTokens", (ALICE, FACTORY), Account.create())
        assert exc_info.value.handle.tx_hash == Web3.to_hex(Web3.keccak(w3.eth.sent[0]))


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_confirmed(self, w3: FakeWeb3, client: EvmLedgerClient):
        tx = tx_handle()
        w3.eth.receipts[tx.tx_hash] = receipt(tx.tx_hash, 12)
        w3.eth.head = 12
        result = await client.await_confirmation(tx, timeout=1)
        assert result.block_number == 12
        assert result.block_hash == "0x" + "01" * 32
        assert result.gas_used == 51_000
        assert result.confirmations == 1

    @pytest.mark.asyncio
    async def test_revert_carries_reason(self, w3: FakeWeb3, client: EvmLedgerClient):
        tx = tx_handle()
        w3.eth.receipts[tx.tx_hash] = receipt(tx.tx_hash, 7, status=0)
        with pytest.raises(TransactionReverted) as exc_info:
            await client.await_confirmation(tx, timeout=1)
        assert "Already claimed" in exc_info.value.reason
        assert not exc_info.value.reason.startswith("execution reverted")
        assert exc_info.value.block_number == 7
        assert w3.eth.replayed_at == [6]

    @pytest.mark.asyncio
    async def test_waits_for_confirmation_depth(self, w3: FakeWeb3):
        client = EvmLedgerClient(
            "http://localhost:8545",
            FACTORY,
            CHAIN_ID,
            w3=w3,
            confirmation_depth=3,
            poll_interval=0.01,
        )
        tx = tx_handle()
        w3.eth.receipts[tx.tx_hash] = receipt(tx.tx_hash, 10)
        w3.eth.head = 9
        w3.eth.mining = True
        result = await client.await_confirmation(tx, timeout=1)
        assert result.confirmations == 3
        assert w3.eth.head == 12
        assert w3.eth.receipt_polls == 3

    @pytest.mark.asyncio
    async def test_missing_receipt_times_out(self, client: EvmLedgerClient):
        tx = tx_handle()
        with pytest.raises(ConfirmationTimeout) as exc_info:
            await client.await_confirmation(tx, timeout=0.05)
        assert exc_info.value.tx_hash == tx.tx_hash

    @pytest.mark.asyncio
    async def test_receipt_poll_errors_are_retried(self, w3: FakeWeb3, client: EvmLedgerClient):
        tx = tx_handle()
        w3.eth.receipts[tx.tx_hash] = receipt(tx.tx_hash, 4)
        w3.eth.head = 4
        w3.eth.receipt_errors = [ConnectionError("reset"), ConnectionError("reset")]
        result = await client.await_confirmation(tx, timeout=1)
        assert result.block_number == 4
        assert w3.eth.receipt_polls == 3


def test_revert_reason_strips_prefix():
    reason = revert_reason(ContractLogicError("execution reverted: Token already claimed"))
    assert "Token already claimed" in reason
    assert not reason.startswith("execution reverted")
    assert revert_reason(ContractLogicError("out of gas")) == "out of gas"


def test_factory_writes_take_the_beneficiary():
    writes = {f["name"]: f for f in FACTORY_ABI if f["stateMutability"] == "nonpayable"}
    assert [a["type"] for a in writes["createToken"]["inputs"]] == ["address", "tuple"]
    assert [a["name"] for a in writes["claimTokens"]["inputs"]] == ["user", "tokenAddress"]
