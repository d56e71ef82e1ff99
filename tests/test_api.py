"""Tests for the HTTP routes."""

import itertools

import pytest
from fastapi.testclient import TestClient
from web3 import Web3

from worldcoins import api
from worldcoins.errors import ConfigurationError
from worldcoins.services import Services

ALICE = Web3.to_checksum_address("0x" + "a1" * 20)
BOB = Web3.to_checksum_address("0x" + "b2" * 20)

_nullifiers = itertools.count(1)


def world_id_proof() -> dict:
    return {
        "proof": "0x" + "ab" * 32,
        "merkle_root": "0x" + "11" * 32,
        "nullifier_hash": f"0x{next(_nullifiers):064x}",
        "verification_level": "orb",
    }


def mint_body(user: str = ALICE) -> dict:
    return {
        "userAddress": user,
        "payload": world_id_proof(),
        "action": "create-token",
        "tokenParams": {"name": "Alice Coin", "symbol": "ALC", "description": ""},
    }


@pytest.fixture
def client(services: Services):
    with TestClient(api.create_app(services)) as c:
        yield c


def test_verify_and_mint(client: TestClient):
    response = client.post("/api/verify-and-mint", json=mint_body())
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["tokenAddress"].startswith("0x")

    again = client.post("/api/verify-and-mint", json=mint_body())
    assert again.status_code == 400
    assert again.json()["violation"] == "already_created"


def test_verify_and_claim(client: TestClient):
    token = client.post("/api/verify-and-mint", json=mint_body()).json()["tokenAddress"]

    claim = {
        "userAddress": BOB,
        "tokenAddress": token,
        "payload": world_id_proof(),
        "action": "claim-token",
    }
    response = client.post("/api/verify-and-claim", json=claim)
    assert response.status_code == 200
    assert response.json()["claimAmount"] == 50

    claim["payload"] = world_id_proof()
    again = client.post("/api/verify-and-claim", json=claim)
    assert again.status_code == 400
    assert again.json()["errorKind"] == "entitlement_violation"


def test_invalid_json(client: TestClient):
    response = client.post(
        "/api/verify-and-mint",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["errorKind"] == "bad_request"


def test_missing_fields(client: TestClient):
    response = client.post("/api/verify-and-claim", json={"userAddress": BOB})
    assert response.status_code == 400
    error = response.json()["error"]
    assert "tokenAddress" in error
    assert "payload" in error


def test_verifier_unreachable(client: TestClient, services: Services):
    services.verifier.unreachable = True
    response = client.post("/api/verify-and-mint", json=mint_body())
    assert response.status_code == 503
    assert response.json()["errorKind"] == "infrastructure_unavailable"


def test_tokens_routes(client: TestClient):
    token = client.post("/api/verify-and-mint", json=mint_body()).json()["tokenAddress"]

    listed = client.get("/api/tokens")
    assert listed.status_code == 200
    assert listed.json()["count"] == 1
    assert listed.json()["data"][0]["address"] == token

    assert client.post("/api/tokens").json()["count"] == 1
    by_creator = client.post("/api/tokens", json={"creatorAddress": ALICE})
    assert by_creator.json()["token"]["address"] == token
    by_user = client.post("/api/tokens", json={"userAddress": BOB})
    assert by_user.json()["tokens"] == []

    bad = client.post("/api/tokens", json={"userAddress": "0x12"})
    assert bad.status_code == 400


def test_unconfigured_service(monkeypatch: pytest.MonkeyPatch):
    def unconfigured():
        raise ConfigurationError("Factory contract address not configured.")

    monkeypatch.setattr(api, "get_services", unconfigured)
    with TestClient(api.create_app()) as client:
        response = client.post("/api/verify-and-mint", json=mint_body())
        tokens = client.get("/api/tokens")

    assert response.status_code == 500
    assert response.json()["errorKind"] == "configuration"
    assert tokens.status_code == 500
