"""Pydantic models for entitlement checks and snapshots."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class Violation(str, Enum):
    ALREADY_CREATED = "already_created"
    INVALID_TOKEN = "invalid_token"
    ALREADY_CLAIMED = "already_claimed"


class CheckResult(BaseModel):
    check_name: str
    passed: bool
    violation: Violation | None = None
    reason: str | None = None


class GuardResult(BaseModel):
    passed: bool
    checks: list[CheckResult]
    violation: Violation | None = None
    reason: str | None = None


class EntitlementState(BaseModel):
    """A fresh read of the on-chain predicates for one principal."""

    principal: str
    has_created_token: bool
    token: str | None = None
    is_valid_token: bool | None = None
    has_claimed: bool | None = None
    read_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
