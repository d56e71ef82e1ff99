"""Action requests, settlement states and results."""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError

from worldcoins.entitlement.models import EntitlementState, GuardResult
from worldcoins.errors import BadRequestError, ErrorKind
from worldcoins.ledger.base import checksum
from worldcoins.verifier.base import ProofPayload, VerificationRecord


class ActionKind(str, Enum):
    CREATE_TOKEN = "create_token"
    CLAIM_TOKEN = "claim_token"


class Outcome(str, Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    FAILED = "failed"


class SettlementState(str, Enum):
    RECEIVED = "received"
    REJECTED_REQUEST = "rejected_request"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    REJECTED_PROOF = "rejected_proof"
    GUARD_CHECKING = "guard_checking"
    GUARD_PASSED = "guard_passed"
    REJECTED_ENTITLEMENT = "rejected_entitlement"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    REVERTED = "reverted"
    FAILED = "failed"


STATUS_CODES = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.PROOF_INVALID: 400,
    ErrorKind.ENTITLEMENT_VIOLATION: 400,
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.SUBMISSION_FAILED: 502,
    ErrorKind.REVERTED: 502,
    ErrorKind.INFRASTRUCTURE_UNAVAILABLE: 503,
    ErrorKind.AMBIGUOUS: 504,
}

Address = Annotated[str, AfterValidator(checksum)]


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class CreateTokenParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Annotated[str, AfterValidator(_not_blank)]
    symbol: Annotated[str, AfterValidator(_not_blank)]
    description: str = ""


class ClaimTokenParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_address: Address


class _ActionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal: Address
    proof: ProofPayload
    action: Annotated[str, AfterValidator(_not_blank)]
    signal: str | None = None


class CreateTokenRequest(_ActionRequest):
    kind: Literal[ActionKind.CREATE_TOKEN] = ActionKind.CREATE_TOKEN
    params: CreateTokenParams

    @property
    def target(self) -> str | None:
        return None

    def ledger_call(self) -> tuple[str, tuple]:
        p = self.params
        return "createToken", (self.principal, (p.name, p.symbol, p.description))


class ClaimTokenRequest(_ActionRequest):
    kind: Literal[ActionKind.CLAIM_TOKEN] = ActionKind.CLAIM_TOKEN
    params: ClaimTokenParams

    @property
    def target(self) -> str | None:
        return self.params.token_address

    def ledger_call(self) -> tuple[str, tuple]:
        return "claimTokens", (self.principal, self.params.token_address)


ActionRequest = CreateTokenRequest | ClaimTokenRequest

REQUEST_TYPES: dict[ActionKind, type[ActionRequest]] = {
    ActionKind.CREATE_TOKEN: CreateTokenRequest,
    ActionKind.CLAIM_TOKEN: ClaimTokenRequest,
}


def entitlement_key(request: ActionRequest) -> tuple[str, str, str]:
    """The (principal, kind, target) tuple that may be confirmed at most once."""
    return request.principal, request.kind.value, request.target or ""


def _display_loc(loc: str, field_names: dict[str, str]) -> str:
    for name in sorted(field_names, key=len, reverse=True):
        if loc == name or loc.startswith(name + "."):
            return field_names[name] + loc[len(name) :]
    return loc


def parse_action_request(
    kind: str, payload: dict, field_names: dict[str, str] | None = None
) -> ActionRequest:
    """Resolve a loosely-typed payload into a typed request, or raise BadRequestError.

    field_names maps internal field paths to the names the caller used, so
    error messages point at the caller's own fields.
    """
    if kind not in {k.value for k in ActionKind}:
        raise BadRequestError(f"Unknown action kind '{kind}'")
    if not isinstance(payload, dict):
        raise BadRequestError("Request body must be an object")
    try:
        fields = {k: v for k, v in payload.items() if k != "kind"}
        return REQUEST_TYPES[ActionKind(kind)].model_validate(fields)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"])
            loc = _display_loc(loc, field_names or {})
            problems.append(f"{loc}: {err['msg']}" if loc else err["msg"])
        raise BadRequestError("; ".join(problems)) from e


class Reconciliation(BaseModel):
    """Follow-up entitlement read after an ambiguous confirmation.

    landed is True/False as observed at checked_at, None if the read failed.
    """

    landed: bool | None
    state: EntitlementState | None = None
    error: str | None = None
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SettlementResult(BaseModel):
    kind: str
    principal: str | None = None
    outcome: Outcome
    state: SettlementState
    error_kind: ErrorKind | None = None
    reason: str | None = None
    trail: list[SettlementState] = Field(default_factory=list)
    tx_hash: str | None = None
    block_number: int | None = None
    block_hash: str | None = None
    verification: VerificationRecord | None = None
    guard: GuardResult | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    claim_amount: int | None = None
    reconciliation: Reconciliation | None = None
    finished_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def status_code(self) -> int:
        if self.outcome == Outcome.CONFIRMED or self.error_kind is None:
            return 200
        return STATUS_CODES[self.error_kind]
