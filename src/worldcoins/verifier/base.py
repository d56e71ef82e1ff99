"""Abstract identity-proof verifier and the proof/verification models."""

from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class VerificationLevel(str, Enum):
    ORB = "orb"
    DEVICE = "device"
    DOCUMENT = "document"
    SECURE_DOCUMENT = "secure_document"


class ProofPayload(BaseModel):
    """A World ID proof as produced by the client (ISuccessResult)."""

    model_config = ConfigDict(frozen=True)

    proof: str = Field(min_length=1)
    merkle_root: str = Field(min_length=1)
    nullifier_hash: str = Field(min_length=1)
    verification_level: VerificationLevel = VerificationLevel.ORB


class VerificationRecord(BaseModel):
    success: bool
    nullifier_hash: str
    detail: dict = Field(default_factory=dict)
    reason: str | None = None


class ProofVerifier(ABC):
    """Validates one-time identity proofs.

    `success=False` is a normal negative result. Only an unreachable verifier
    raises (VerifierUnreachable).
    """

    @abstractmethod
    async def verify(
        self, proof: ProofPayload, app_id: str, action: str, signal: str | None = None
    ) -> VerificationRecord: ...
