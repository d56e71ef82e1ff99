"""get_audit_log tool: a summarized view of recent settlements."""

from worldcoins.audit.logger import AuditLogger


def handle_get_recent_actions(*, audit_logger: AuditLogger, n: int = 10) -> list[dict]:
    """Return a summary of the last N settlements.

    Callers see: action, principal, outcome, reason, tx hash.
    They do NOT see: the hash chain, nullifier hashes, full verifier responses.
    """
    entries = audit_logger.read_entries(last_n=n)
    summaries = []
    for entry in entries:
        summary = {
            "event_id": entry.event_id,
            "action": entry.action,
            "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
            "principal": entry.principal,
            "params": entry.params,
            "outcome": entry.outcome,
        }
        if entry.error_kind:
            summary["error_kind"] = entry.error_kind
        if entry.guard_check:
            summary["guard_check"] = entry.guard_check
        if entry.guard_reason:
            summary["guard_reason"] = entry.guard_reason
        if entry.tx_hash:
            summary["tx_hash"] = entry.tx_hash
        if entry.reconciles:
            summary["reconciles"] = entry.reconciles
        summaries.append(summary)
    return summaries
