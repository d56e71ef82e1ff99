"""Audit log hash chain verification."""

from pathlib import Path

from worldcoins.audit.models import AuditEntry, VerificationResult, compute_entry_hash


class AuditVerifier:
    """Verify the integrity of an audit log's hash chain."""

    def verify(self, log_path: Path) -> VerificationResult:
        """Read the entire audit log and verify hash chain integrity.

        Checks:
        1. Each entry's hash matches its contents
        2. Each entry's prev_hash matches the previous entry's hash
        3. First entry's prev_hash is None
        """
        if not log_path.exists():
            return VerificationResult(valid=True, entries_checked=0)

        entries: list[AuditEntry] = []
        with open(log_path) as f:
            for i, line in enumerate(f):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.model_validate_json(line))
                except ValueError as e:
                    return VerificationResult(
                        valid=False,
                        entries_checked=i,
                        first_error=f"Line {i + 1}: failed to parse entry: {e}",
                    )

        prev_hash: str | None = None

        for i, entry in enumerate(entries):
            if entry.prev_hash != prev_hash:
                return VerificationResult(
                    valid=False,
                    entries_checked=i + 1,
                    first_error=(
                        f"Entry {i + 1} ({entry.event_id}): prev_hash mismatch. "
                        f"Expected {prev_hash}, got {entry.prev_hash}"
                    ),
                )

            computed_hash = compute_entry_hash(entry)
            if entry.entry_hash != computed_hash:
                return VerificationResult(
                    valid=False,
                    entries_checked=i + 1,
                    first_error=(
                        f"Entry {i + 1} ({entry.event_id}): hash mismatch. "
                        f"Expected {computed_hash}, got {entry.entry_hash}"
                    ),
                )

            prev_hash = entry.entry_hash

        return VerificationResult(valid=True, entries_checked=len(entries))
