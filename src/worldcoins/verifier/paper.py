"""Paper verifier: accepts well-formed proofs once per (app, action, nullifier)."""

from worldcoins.errors import VerifierUnreachable
from worldcoins.verifier.base import ProofPayload, ProofVerifier, VerificationRecord


class PaperVerifier(ProofVerifier):
    """In-process stand-in for the World ID verifier.

    Proofs listed in `invalid_proofs` fail verification, and setting
    `unreachable` simulates a network failure.
    """

    def __init__(self, max_verifications: int = 1) -> None:
        self.max_verifications = max_verifications
        self.unreachable = False
        self.invalid_proofs: set[str] = set()
        self.calls: list[tuple[str, str, str | None]] = []
        self._uses: dict[tuple[str, str, str], int] = {}

    async def verify(
        self, proof: ProofPayload, app_id: str, action: str, signal: str | None = None
    ) -> VerificationRecord:
        self.calls.append((proof.nullifier_hash, action, signal))
        if self.unreachable:
            raise VerifierUnreachable("paper verifier is offline")

        if proof.proof in self.invalid_proofs:
            return VerificationRecord(
                success=False,
                nullifier_hash=proof.nullifier_hash,
                detail={"code": "invalid_proof", "detail": "The provided proof is invalid."},
                reason="The provided proof is invalid.",
            )

        key = (app_id, action, proof.nullifier_hash)
        uses = self._uses.get(key, 0)
        if uses >= self.max_verifications:
            message = "This person has already verified for this action."
            return VerificationRecord(
                success=False,
                nullifier_hash=proof.nullifier_hash,
                detail={"code": "max_verifications_reached", "detail": message},
                reason=message,
            )
        self._uses[key] = uses + 1
        return VerificationRecord(
            success=True,
            nullifier_hash=proof.nullifier_hash,
            detail={"success": True, "action": action, "uses": uses + 1},
        )
