"""Tests for the World ID cloud verifier client and the paper verifier."""

import json

import httpx
import pytest

from worldcoins.errors import VerifierUnreachable
from worldcoins.verifier.base import ProofPayload, VerificationLevel
from worldcoins.verifier.paper import PaperVerifier
from worldcoins.verifier.worldid import WorldIDVerifier, hash_to_field

PROOF = ProofPayload(
    proof="0x" + "ab" * 256,
    merkle_root="0x" + "11" * 32,
    nullifier_hash="0x" + "22" * 32,
    verification_level=VerificationLevel.ORB,
)


def make_verifier(handler) -> WorldIDVerifier:
    return WorldIDVerifier("https://portal.test", transport=httpx.MockTransport(handler))


def test_hash_to_field_empty_signal():
    assert hash_to_field(None) == hash_to_field("")
    assert hash_to_field("") == (
        "0x00c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a4"
    )


def test_hash_to_field_fits_the_field():
    value = hash_to_field("0x" + "ff" * 20)
    assert len(value) == 66
    assert value.startswith("0x00")
    assert hash_to_field("0x" + "ff" * 20) != hash_to_field("ff" * 20)


@pytest.mark.asyncio
async def test_verify_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "action": "create-token"})

    record = await make_verifier(handler).verify(PROOF, "app_123", "create-token", "0xsignal")
    assert record.success
    assert record.nullifier_hash == PROOF.nullifier_hash
    assert record.detail["success"] is True

    assert seen["path"] == "/api/v2/verify/app_123"
    body = seen["body"]
    assert body["action"] == "create-token"
    assert body["nullifier_hash"] == PROOF.nullifier_hash
    assert body["merkle_root"] == PROOF.merkle_root
    assert body["verification_level"] == "orb"
    assert body["signal_hash"] == hash_to_field("0xsignal")


@pytest.mark.asyncio
async def test_verify_rejected_proof():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={
                "code": "max_verifications_reached",
                "detail": "This person has already verified for this action.",
                "attribute": None,
            },
        )

    record = await make_verifier(handler).verify(PROOF, "app_123", "claim-token")
    assert not record.success
    assert record.reason == "This person has already verified for this action."
    assert record.detail["code"] == "max_verifications_reached"


@pytest.mark.asyncio
async def test_verify_rejection_without_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    record = await make_verifier(handler).verify(PROOF, "app_missing", "create-token")
    assert not record.success
    assert record.reason == "HTTP 404"
    assert record.detail == {"raw": "not found"}


@pytest.mark.asyncio
async def test_verifier_server_error_is_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream unavailable")

    with pytest.raises(VerifierUnreachable, match="503"):
        await make_verifier(handler).verify(PROOF, "app_123", "create-token")


@pytest.mark.asyncio
async def test_verifier_network_error_is_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(VerifierUnreachable, match="connection refused"):
        await make_verifier(handler).verify(PROOF, "app_123", "create-token")


@pytest.mark.asyncio
async def test_paper_verifier_one_time_use():
    verifier = PaperVerifier()
    assert (await verifier.verify(PROOF, "app_123", "create-token")).success
    # same nullifier, different action is a separate entitlement
    assert (await verifier.verify(PROOF, "app_123", "claim-token")).success

    replay = await verifier.verify(PROOF, "app_123", "create-token")
    assert not replay.success
    assert replay.detail["code"] == "max_verifications_reached"


@pytest.mark.asyncio
async def test_paper_verifier_invalid_and_unreachable():
    verifier = PaperVerifier()
    verifier.invalid_proofs.add(PROOF.proof)
    record = await verifier.verify(PROOF, "app_123", "create-token")
    assert not record.success
    assert record.detail["code"] == "invalid_proof"

    verifier.unreachable = True
    with pytest.raises(VerifierUnreachable):
        await verifier.verify(PROOF, "app_123", "create-token")
