"""Tests for the signing authority's nonce allocation."""

import asyncio

import pytest
from eth_account import Account
from web3 import Web3

from worldcoins.errors import BroadcastUnconfirmed, SubmissionFailed
from worldcoins.ledger.paper import PaperLedger
from worldcoins.settlement.signing import SigningAuthority


def creator(i: int) -> str:
    return Web3.to_checksum_address(f"0x{i:040x}")


def create_args(i: int) -> tuple:
    return (creator(i), (f"Token {i}", f"TK{i}", ""))


@pytest.fixture
def ledger() -> PaperLedger:
    return PaperLedger()


@pytest.fixture
def signer(ledger: PaperLedger) -> SigningAuthority:
    return SigningAuthority(Account.create(), ledger)


@pytest.mark.asyncio
async def test_sequential_nonces(signer: SigningAuthority, ledger: PaperLedger):
    first = await signer.submit("createToken", create_args(1))
    second = await signer.submit("createToken", create_args(2))
    assert (first.nonce, second.nonce) == (0, 1)
    assert first.sender == signer.address


@pytest.mark.asyncio
async def test_concurrent_submissions_get_distinct_nonces(
    signer: SigningAuthority, ledger: PaperLedger
):
    handles = await asyncio.gather(
        *(signer.submit("createToken", create_args(i)) for i in range(1, 11))
    )
    assert sorted(h.nonce for h in handles) == list(range(10))
    assert await ledger.next_nonce(signer.address) == 10


@pytest.mark.asyncio
async def test_resumes_from_ledger_nonce(ledger: PaperLedger):
    account = Account.create()
    await ledger.submit("createToken", create_args(1), account)
    await ledger.submit("createToken", create_args(2), account)

    signer = SigningAuthority(account, ledger)
    handle = await signer.submit("createToken", create_args(3))
    assert handle.nonce == 2


@pytest.mark.asyncio
async def test_failure_rereads_nonce(signer: SigningAuthority, ledger: PaperLedger):
    await signer.submit("createToken", create_args(1))

    ledger.reject_submissions = "replacement transaction underpriced"
    with pytest.raises(SubmissionFailed):
        await signer.submit("createToken", create_args(2))

    # another process spent a nonce meanwhile
    ledger.reject_submissions = None
    ledger.state.nonces[signer.address] = 5

    handle = await signer.submit("createToken", create_args(3))
    assert handle.nonce == 5


@pytest.mark.asyncio
async def test_nonce_read_failure_is_submission_failure(
    signer: SigningAuthority, ledger: PaperLedger
):
    ledger.unavailable = True
    with pytest.raises(SubmissionFailed, match="operator nonce"):
        await signer.submit("createToken", create_args(1))


@pytest.mark.asyncio
async def test_lost_ack_rereads_nonce(signer: SigningAuthority, ledger: PaperLedger):
    ledger.drop_broadcast_acks = True
    with pytest.raises(BroadcastUnconfirmed) as excinfo:
        await signer.submit("createToken", create_args(1))
    assert excinfo.value.handle.nonce == 0

    # the dropped transaction never made it into a block
    ledger.drop_broadcast_acks = False
    ledger.state.mempool.clear()
    ledger.state.nonces[signer.address] = 0

    handle = await signer.submit("createToken", create_args(2))
    assert handle.nonce == 0
