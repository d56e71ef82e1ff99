"""Entitlement guard: the mandatory fresh re-read before every ledger write."""

import logging

from worldcoins.entitlement.checks import (
    ClaimOnceCheck,
    CreateOnceCheck,
    EntitlementCheck,
    TokenValidityCheck,
)
from worldcoins.entitlement.models import CheckResult, EntitlementState, GuardResult
from worldcoins.ledger.base import LedgerClient

logger = logging.getLogger(__name__)


class EntitlementGuard:
    """Run the uniqueness checks for an action against live ledger state.

    Nothing is cached: every call reads through the ledger client, so a
    second request for an entitlement that was consumed a moment ago fails
    here instead of wasting a ledger write. Ledger read errors propagate.
    """

    def __init__(self, ledger: LedgerClient) -> None:
        self.ledger = ledger
        self.create_checks: list[EntitlementCheck] = [CreateOnceCheck()]
        self.claim_checks: list[EntitlementCheck] = [TokenValidityCheck(), ClaimOnceCheck()]

    async def assert_can_create(self, principal: str) -> GuardResult:
        return await self._run(self.create_checks, principal)

    async def assert_can_claim(self, principal: str, token: str) -> GuardResult:
        return await self._run(self.claim_checks, principal, token)

    async def _run(
        self, checks: list[EntitlementCheck], principal: str, token: str | None = None
    ) -> GuardResult:
        results: list[CheckResult] = []
        for check in checks:
            result = await check.evaluate(self.ledger, principal, token)
            results.append(result)
            # later checks assume earlier ones hold (no claim lookup on an unknown token)
            if not result.passed:
                logger.info(
                    "Entitlement check %s failed for %s: %s",
                    check.name,
                    principal,
                    result.reason,
                )
                return GuardResult(
                    passed=False,
                    checks=results,
                    violation=result.violation,
                    reason=result.reason,
                )
        return GuardResult(passed=True, checks=results)

    async def snapshot(self, principal: str, token: str | None = None) -> EntitlementState:
        """Read every predicate relevant to principal (and token, if given)."""
        state = EntitlementState(
            principal=principal,
            has_created_token=await self.ledger.has_created_token(principal),
            token=token,
        )
        if token is not None:
            state.is_valid_token = await self.ledger.is_valid_token(token)
            if state.is_valid_token:
                state.has_claimed = await self.ledger.has_user_claimed(principal, token)
            else:
                state.has_claimed = False
        return state
