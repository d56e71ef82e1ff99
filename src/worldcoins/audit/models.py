"""Pydantic models for audit trail entries."""

import hashlib
import json
from datetime import UTC, datetime

from pydantic import BaseModel, Field


class AuditEntry(BaseModel):
    event_id: str = Field(default_factory=lambda: "")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    principal: str | None = None
    action: str
    params: dict
    nullifier_hash: str | None = None
    guard_check: str | None = None
    guard_reason: str | None = None
    outcome: str | None = None
    error_kind: str | None = None
    tx_hash: str | None = None
    reconciles: str | None = None
    result: dict | None = None
    prev_hash: str | None = None
    entry_hash: str | None = None


class VerificationResult(BaseModel):
    valid: bool
    entries_checked: int
    first_error: str | None = None


def compute_entry_hash(entry: AuditEntry) -> str:
    """Hash everything except entry_hash."""
    hashable = entry.model_dump(exclude={"entry_hash"})
    canonical = json.dumps(hashable, sort_keys=True, default=str)
    return "sha256:" + hashlib.sha256(canonical.encode()).hexdigest()
