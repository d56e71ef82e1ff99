"""Individual on-chain entitlement checks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from worldcoins.entitlement.models import CheckResult, Violation

if TYPE_CHECKING:
    from worldcoins.ledger.base import LedgerClient


class EntitlementCheck(ABC):
    """Base class for a single uniqueness predicate read from the ledger."""

    name: str = "base_check"

    @abstractmethod
    async def evaluate(
        self, ledger: LedgerClient, principal: str, token: str | None = None
    ) -> CheckResult: ...


class CreateOnceCheck(EntitlementCheck):
    """Check that the principal has not already created a token."""

    name = "create_once"

    async def evaluate(
        self, ledger: LedgerClient, principal: str, token: str | None = None
    ) -> CheckResult:
        if await ledger.has_created_token(principal):
            return CheckResult(
                check_name=self.name,
                passed=False,
                violation=Violation.ALREADY_CREATED,
                reason="User has already created a token",
            )
        return CheckResult(check_name=self.name, passed=True)


class TokenValidityCheck(EntitlementCheck):
    """Check that the target token was deployed by the factory."""

    name = "token_validity"

    async def evaluate(
        self, ledger: LedgerClient, principal: str, token: str | None = None
    ) -> CheckResult:
        if token is None or not await ledger.is_valid_token(token):
            return CheckResult(
                check_name=self.name,
                passed=False,
                violation=Violation.INVALID_TOKEN,
                reason="Invalid token address",
            )
        return CheckResult(check_name=self.name, passed=True)


class ClaimOnceCheck(EntitlementCheck):
    """Check that the principal has not already claimed from the target token."""

    name = "claim_once"

    async def evaluate(
        self, ledger: LedgerClient, principal: str, token: str | None = None
    ) -> CheckResult:
        if token is not None and await ledger.has_user_claimed(principal, token):
            return CheckResult(
                check_name=self.name,
                passed=False,
                violation=Violation.ALREADY_CLAIMED,
                reason="User has already claimed from this token",
            )
        return CheckResult(check_name=self.name, passed=True)
