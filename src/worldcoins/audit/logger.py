"""Append-only JSONL audit logger with hash chain."""

import uuid
from datetime import UTC, datetime
from pathlib import Path

from worldcoins.audit.models import AuditEntry, compute_entry_hash

AMBIGUOUS = "ambiguous"
RECONCILE_ACTION = "reconcile"


class AuditLogger:
    """Append-only JSONL logger with hash chain.

    Each entry's prev_hash points to the previous entry's hash,
    forming an integrity-verifiable chain. One process should own a log
    file at a time.
    """

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path
        self._last_hash = self._read_last_hash()

    def log(
        self,
        action: str,
        params: dict,
        principal: str | None = None,
        nullifier_hash: str | None = None,
        guard_check: str | None = None,
        guard_reason: str | None = None,
        outcome: str | None = None,
        error_kind: str | None = None,
        tx_hash: str | None = None,
        reconciles: str | None = None,
        result: dict | None = None,
    ) -> AuditEntry:
        """Create and append an audit entry to the log."""
        entry = AuditEntry(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            timestamp=datetime.now(UTC),
            principal=principal,
            action=action,
            params=params,
            nullifier_hash=nullifier_hash,
            guard_check=guard_check,
            guard_reason=guard_reason,
            outcome=outcome,
            error_kind=error_kind,
            tx_hash=tx_hash,
            reconciles=reconciles,
            result=result,
            prev_hash=self._last_hash,
        )
        entry.entry_hash = compute_entry_hash(entry)

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a") as f:
            f.write(entry.model_dump_json() + "\n")

        # only a written entry may become the chain head
        self._last_hash = entry.entry_hash
        return entry

    def read_entries(self, last_n: int | None = None) -> list[AuditEntry]:
        """Read entries from the audit log."""
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path) as f:
            for line in f:
                line = line.strip()
                if line:
                    entries.append(AuditEntry.model_validate_json(line))

        if last_n is not None:
            return entries[-last_n:]
        return entries

    def pending_reconciliation(self) -> list[AuditEntry]:
        """Ambiguous settlements that no later reconcile entry has resolved."""
        entries = self.read_entries()
        resolved = {e.reconciles for e in entries if e.action == RECONCILE_ACTION}
        return [
            e
            for e in entries
            if e.error_kind == AMBIGUOUS and e.event_id not in resolved
        ]

    def _read_last_hash(self) -> str | None:
        """Read the last entry's hash from the log file, or None if empty."""
        if not self.log_path.exists():
            return None

        last_line = None
        with open(self.log_path) as f:
            for line in f:
                line = line.strip()
                if line:
                    last_line = line

        if last_line is None:
            return None

        entry = AuditEntry.model_validate_json(last_line)
        return entry.entry_hash
