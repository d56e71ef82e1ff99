"""Settlement orchestrator: verify, re-check entitlement, submit, confirm.

Every request walks a linear state machine:

    received -> verifying -> verified | rejected_proof
             -> guard_checking -> guard_passed | rejected_entitlement
             -> submitting -> submitted -> confirming
             -> confirmed | timed_out | reverted

Malformed input ends in rejected_request before either external system is
contacted; infrastructure and submission errors end in failed. Once a proof
has verified, the rest of the settlement runs as a shielded task, so a
caller that disconnects never cancels a ledger write or its confirmation
wait, and the terminal result is still logged and audited.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from worldcoins.audit.logger import AuditLogger
from worldcoins.entitlement.guard import EntitlementGuard
from worldcoins.entitlement.models import GuardResult
from worldcoins.errors import (
    BadRequestError,
    BroadcastUnconfirmed,
    ConfirmationTimeout,
    ErrorKind,
    LedgerDecodeError,
    RpcUnavailable,
    SubmissionFailed,
    TransactionReverted,
    VerifierUnreachable,
)
from worldcoins.ledger.base import CLAIM_AMOUNT, UNIT, LedgerClient, Receipt, TxHandle
from worldcoins.settlement.models import (
    ActionKind,
    ActionRequest,
    CreateTokenRequest,
    Outcome,
    Reconciliation,
    SettlementResult,
    SettlementState,
    entitlement_key,
    parse_action_request,
)
from worldcoins.settlement.signing import SigningAuthority
from worldcoins.verifier.base import ProofVerifier, VerificationRecord

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_TIMEOUT = 60.0


class _Progress:
    """Mutable scratchpad for one request; frozen into a SettlementResult at the end."""

    def __init__(self, kind: str, principal: str | None, params: dict[str, Any]) -> None:
        self.kind = kind
        self.principal = principal
        self.params = params
        self.trail: list[SettlementState] = [SettlementState.RECEIVED]
        self.verification: VerificationRecord | None = None
        self.guard: GuardResult | None = None
        self.tx: TxHandle | None = None

    def advance(self, state: SettlementState) -> None:
        logger.debug("%s %s for %s -> %s", self.kind, id(self), self.principal, state.value)
        self.trail.append(state)

    def finish(
        self,
        outcome: Outcome,
        state: SettlementState,
        error_kind: ErrorKind | None = None,
        reason: str | None = None,
        **extra: Any,
    ) -> SettlementResult:
        if self.trail[-1] != state:
            self.advance(state)
        return SettlementResult(
            kind=self.kind,
            principal=self.principal,
            outcome=outcome,
            state=state,
            error_kind=error_kind,
            reason=reason,
            trail=list(self.trail),
            tx_hash=self.tx.tx_hash if self.tx else None,
            verification=self.verification,
            guard=self.guard,
            params=self.params,
            **extra,
        )


def _echo_params(request: ActionRequest) -> dict[str, Any]:
    return request.params.model_dump(mode="json")


class SettlementOrchestrator:
    """Sequence proof verification, entitlement re-check, submission and confirmation.

    No step is retried here. An in-process lock per (principal, kind, target)
    is held from the guard check through confirmation, so duplicate
    concurrent requests serialize and the second one sees the first's write.
    """

    def __init__(
        self,
        *,
        app_id: str,
        verifier: ProofVerifier,
        ledger: LedgerClient,
        signer: SigningAuthority,
        guard: EntitlementGuard | None = None,
        audit_logger: AuditLogger | None = None,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
    ) -> None:
        self.app_id = app_id
        self.verifier = verifier
        self.ledger = ledger
        self.signer = signer
        self.guard = guard or EntitlementGuard(ledger)
        self.audit_logger = audit_logger
        self.confirmation_timeout = confirmation_timeout
        self._locks: dict[tuple[str, str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str, str], int] = {}
        self._inflight: set[asyncio.Task] = set()

    async def settle_payload(
        self, kind: str, payload: dict, field_names: dict[str, str] | None = None
    ) -> SettlementResult:
        """Parse a raw action payload and settle it."""
        try:
            request = parse_action_request(kind, payload, field_names)
        except BadRequestError as e:
            principal = payload.get("principal") if isinstance(payload, dict) else None
            progress = _Progress(kind, principal if isinstance(principal, str) else None, {})
            logger.info("Rejected malformed %s request: %s", kind, e)
            return progress.finish(
                Outcome.REJECTED,
                SettlementState.REJECTED_REQUEST,
                ErrorKind.BAD_REQUEST,
                str(e),
            )
        return await self.settle(request)

    async def settle(self, request: ActionRequest) -> SettlementResult:
        progress = _Progress(request.kind.value, request.principal, _echo_params(request))

        progress.advance(SettlementState.VERIFYING)
        try:
            record = await self.verifier.verify(
                request.proof, self.app_id, request.action, request.signal
            )
        except VerifierUnreachable as e:
            return self._record(
                progress.finish(
                    Outcome.FAILED,
                    SettlementState.FAILED,
                    ErrorKind.INFRASTRUCTURE_UNAVAILABLE,
                    str(e),
                )
            )
        progress.verification = record
        if not record.success:
            return self._record(
                progress.finish(
                    Outcome.REJECTED,
                    SettlementState.REJECTED_PROOF,
                    ErrorKind.PROOF_INVALID,
                    record.reason or "World ID verification failed",
                )
            )
        progress.advance(SettlementState.VERIFIED)

        task = asyncio.create_task(self._settle_verified(request, progress))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for settlements whose callers have gone away."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    @asynccontextmanager
    async def _entitlement_lock(self, key: tuple[str, str, str]) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def _settle_verified(
        self, request: ActionRequest, progress: _Progress
    ) -> SettlementResult:
        async with self._entitlement_lock(entitlement_key(request)):
            progress.advance(SettlementState.GUARD_CHECKING)
            try:
                guard = await self._check_entitlement(request)
            except (RpcUnavailable, LedgerDecodeError) as e:
                return self._record(
                    progress.finish(
                        Outcome.FAILED,
                        SettlementState.FAILED,
                        ErrorKind.INFRASTRUCTURE_UNAVAILABLE,
                        f"Entitlement check failed: {e}",
                    )
                )
            progress.guard = guard
            if not guard.passed:
                return self._record(
                    progress.finish(
                        Outcome.REJECTED,
                        SettlementState.REJECTED_ENTITLEMENT,
                        ErrorKind.ENTITLEMENT_VIOLATION,
                        guard.reason,
                    )
                )
            progress.advance(SettlementState.GUARD_PASSED)

            function_name, args = request.ledger_call()
            progress.advance(SettlementState.SUBMITTING)
            try:
                progress.tx = await self.signer.submit(function_name, args)
            except SubmissionFailed as e:
                return self._record(
                    progress.finish(
                        Outcome.FAILED,
                        SettlementState.FAILED,
                        ErrorKind.SUBMISSION_FAILED,
                        str(e),
                    )
                )
            except BroadcastUnconfirmed as e:
                # may be in the mempool: wait on the known hash like any other write
                logger.warning("%s for %s: %s", request.kind.value, request.principal, e)
                progress.tx = e.handle
            progress.advance(SettlementState.SUBMITTED)

            progress.advance(SettlementState.CONFIRMING)
            try:
                receipt = await self.ledger.await_confirmation(
                    progress.tx, self.confirmation_timeout
                )
            except TransactionReverted as e:
                return self._record(
                    progress.finish(
                        Outcome.FAILED,
                        SettlementState.REVERTED,
                        ErrorKind.REVERTED,
                        e.reason or "Transaction reverted",
                        block_number=e.block_number,
                    )
                )
            except (ConfirmationTimeout, RpcUnavailable) as e:
                reconciliation = await self._reconcile(request)
                return self._record(
                    progress.finish(
                        Outcome.FAILED,
                        SettlementState.TIMED_OUT,
                        ErrorKind.AMBIGUOUS,
                        f"{e}. The write may still land; re-check entitlement before retrying.",
                        reconciliation=reconciliation,
                    )
                )

            return self._record(self._confirmed(request, progress, receipt))

    async def _check_entitlement(self, request: ActionRequest) -> GuardResult:
        if isinstance(request, CreateTokenRequest):
            return await self.guard.assert_can_create(request.principal)
        return await self.guard.assert_can_claim(request.principal, request.params.token_address)

    def _confirmed(
        self, request: ActionRequest, progress: _Progress, receipt: Receipt
    ) -> SettlementResult:
        claim_amount = CLAIM_AMOUNT // UNIT if request.kind == ActionKind.CLAIM_TOKEN else None
        return progress.finish(
            Outcome.CONFIRMED,
            SettlementState.CONFIRMED,
            block_number=receipt.block_number,
            block_hash=receipt.block_hash,
            claim_amount=claim_amount,
        )

    async def _reconcile(self, request: ActionRequest) -> Reconciliation:
        """Read entitlement once more so an ambiguous result says what the ledger shows."""
        try:
            state = await self.guard.snapshot(request.principal, request.target)
        except (RpcUnavailable, LedgerDecodeError) as e:
            return Reconciliation(landed=None, error=str(e))
        if isinstance(request, CreateTokenRequest):
            landed = state.has_created_token
        else:
            landed = bool(state.has_claimed)
        return Reconciliation(landed=landed, state=state)

    def _record(self, result: SettlementResult) -> SettlementResult:
        if result.outcome == Outcome.CONFIRMED:
            logger.info(
                "%s confirmed for %s: tx %s in block %s",
                result.kind,
                result.principal,
                result.tx_hash,
                result.block_number,
            )
        elif result.error_kind == ErrorKind.AMBIGUOUS:
            landed = result.reconciliation.landed if result.reconciliation else None
            logger.warning(
                "%s for %s is ambiguous: tx %s unconfirmed, ledger shows landed=%s",
                result.kind,
                result.principal,
                result.tx_hash,
                landed,
            )
        elif result.outcome == Outcome.FAILED:
            logger.warning(
                "%s failed for %s (%s): %s",
                result.kind,
                result.principal,
                result.error_kind.value if result.error_kind else None,
                result.reason,
            )
        else:
            logger.info("%s rejected for %s: %s", result.kind, result.principal, result.reason)

        if self.audit_logger is not None:
            try:
                self.audit_logger.log(
                    action=result.kind,
                    params=result.params,
                    principal=result.principal,
                    nullifier_hash=(
                        result.verification.nullifier_hash if result.verification else None
                    ),
                    guard_check=(
                        None if result.guard is None else "PASS" if result.guard.passed else "FAIL"
                    ),
                    guard_reason=result.guard.reason if result.guard else None,
                    outcome=result.outcome.value,
                    error_kind=result.error_kind.value if result.error_kind else None,
                    tx_hash=result.tx_hash,
                    result=result.model_dump(mode="json", exclude={"params", "guard"}),
                )
            except OSError:
                logger.exception("Failed to append audit entry for tx %s", result.tx_hash)
        return result
