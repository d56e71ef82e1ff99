"""World ID cloud verification client."""

import logging

import httpx
from eth_utils import is_hex
from web3 import Web3

from worldcoins import __version__
from worldcoins.errors import VerifierUnreachable
from worldcoins.verifier.base import ProofPayload, ProofVerifier, VerificationRecord

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://developer.worldcoin.org"


def hash_to_field(value: str | None) -> str:
    """Hash a signal the way World ID does: keccak256, shifted right 8 bits.

    Hex strings are hashed as the bytes they encode, anything else as UTF-8.
    """
    value = value or ""
    if value.startswith("0x") and is_hex(value) and len(value) % 2 == 0:
        digest = Web3.keccak(hexstr=value)
    else:
        digest = Web3.keccak(text=value)
    field = int.from_bytes(digest, "big") >> 8
    return "0x" + format(field, "064x")


class WorldIDVerifier(ProofVerifier):
    """Verify proofs against the Developer Portal `/api/v2/verify/{app_id}` endpoint.

    The portal enforces one-time use per (app, action, nullifier); a replayed
    proof comes back as a 400 with code `max_verifications_reached`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def verify(
        self, proof: ProofPayload, app_id: str, action: str, signal: str | None = None
    ) -> VerificationRecord:
        body = {
            "nullifier_hash": proof.nullifier_hash,
            "merkle_root": proof.merkle_root,
            "proof": proof.proof,
            "verification_level": proof.verification_level.value,
            "action": action,
            "signal_hash": hash_to_field(signal),
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(
                    f"/api/v2/verify/{app_id}",
                    json=body,
                    headers={"User-Agent": f"worldcoins/{__version__}"},
                )
        except httpx.HTTPError as e:
            raise VerifierUnreachable(f"World ID verifier request failed: {e}") from e

        if response.status_code >= 500:
            raise VerifierUnreachable(
                f"World ID verifier returned HTTP {response.status_code}"
            )

        try:
            detail = response.json()
        except ValueError:
            detail = {"raw": response.text}
        if not isinstance(detail, dict):
            detail = {"raw": detail}

        if response.status_code == 200:
            logger.debug("Proof verified for action %s", action)
            return VerificationRecord(
                success=True, nullifier_hash=proof.nullifier_hash, detail=detail
            )

        reason = detail.get("detail") or detail.get("code") or f"HTTP {response.status_code}"
        logger.info("Proof rejected for action %s: %s", action, reason)
        return VerificationRecord(
            success=False, nullifier_hash=proof.nullifier_hash, detail=detail, reason=reason
        )
