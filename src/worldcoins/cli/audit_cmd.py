"""worldcoins audit: audit trail commands."""

import asyncio
import json
from pathlib import Path

import click

from worldcoins.cli.main import cli
from worldcoins.config import load_config


def _audit_path(path: str | None) -> Path:
    if path:
        return Path(path)
    return load_config().resolved_audit_path()


@cli.group()
def audit() -> None:
    """Audit trail commands."""


@audit.command()
@click.option("--path", default=None, help="Audit log path (default: from config)")
def verify(path: str | None) -> None:
    """Verify audit log hash chain integrity."""
    from worldcoins.audit.verifier import AuditVerifier

    audit_path = _audit_path(path)
    if not audit_path.exists():
        click.echo(f"No audit log found at {audit_path}")
        return

    result = AuditVerifier().verify(audit_path)
    if result.valid:
        click.echo(f"Audit log verified: {result.entries_checked} entries, chain intact.")
    else:
        click.echo(f"VERIFICATION FAILED at entry {result.entries_checked}")
        click.echo(f"Error: {result.first_error}")
        raise SystemExit(1)


@audit.command()
@click.option("--path", default=None, help="Audit log path (default: from config)")
@click.option("--last", "n", default=20, type=int, help="Number of entries to show")
def show(path: str | None, n: int) -> None:
    """Print recent audit entries."""
    from worldcoins.audit.logger import AuditLogger

    audit_path = _audit_path(path)
    if not audit_path.exists():
        click.echo(f"No audit log found at {audit_path}")
        return

    for entry in AuditLogger(audit_path).read_entries(last_n=n):
        outcome = entry.outcome or "-"
        if entry.error_kind:
            outcome = f"{outcome}/{entry.error_kind}"
        click.echo(
            f"  {entry.timestamp.isoformat()[:19]}  {entry.action:<12} {outcome:<30}"
            f" {entry.principal or ''}"
        )
        if entry.guard_reason:
            click.echo(f"    reason: {entry.guard_reason}")
        if entry.tx_hash:
            click.echo(f"    tx: {entry.tx_hash}")


@audit.command()
@click.option("--path", default=None, help="Audit log path (default: from config)")
@click.option("--format", "fmt", default="json", type=click.Choice(["json", "csv"]))
@click.option("--output", "output_path", default=None, help="Output file path")
def export(path: str | None, fmt: str, output_path: str | None) -> None:
    """Export audit log to JSON or CSV."""
    import csv
    import io

    from worldcoins.audit.logger import AuditLogger

    audit_path = _audit_path(path)
    if not audit_path.exists():
        click.echo(f"No audit log found at {audit_path}")
        return

    entries = AuditLogger(audit_path).read_entries()

    if fmt == "json":
        content = json.dumps([e.model_dump(mode="json") for e in entries], indent=2)
    else:
        output = io.StringIO()
        if entries:
            fields = list(entries[0].model_dump().keys())
            writer = csv.DictWriter(output, fieldnames=fields)
            writer.writeheader()
            for entry in entries:
                row = entry.model_dump(mode="json")
                row["params"] = json.dumps(row["params"])
                if row["result"]:
                    row["result"] = json.dumps(row["result"])
                writer.writerow(row)
        content = output.getvalue()

    if output_path:
        with open(output_path, "w") as f:
            f.write(content)
        click.echo(f"Exported {len(entries)} entries to {output_path}")
    else:
        click.echo(content)


@audit.command()
@click.option("--path", default=None, help="Audit log path (default: from config)")
@click.option(
    "--mark-unlanded",
    is_flag=True,
    default=False,
    help="Also resolve entries whose write is not on the ledger (only once it can no longer land)",
)
def reconcile(path: str | None, mark_unlanded: bool) -> None:
    """Re-read the ledger for ambiguous settlements and record what landed."""
    from worldcoins.audit.logger import AuditLogger

    audit_path = _audit_path(path)
    if not audit_path.exists():
        click.echo(f"No audit log found at {audit_path}")
        return

    logger = AuditLogger(audit_path)
    pending = logger.pending_reconciliation()
    if not pending:
        click.echo("No ambiguous settlements awaiting reconciliation.")
        return

    findings = asyncio.run(_check_pending(pending))
    resolved = 0
    for entry, landed, error in findings:
        label = f"{entry.action} for {entry.principal} (tx {entry.tx_hash})"
        if error is not None:
            click.echo(f"  ⚠ {label}: ledger read failed: {error}")
            continue
        if not landed and not mark_unlanded:
            click.echo(f"  … {label}: not on the ledger yet, left pending")
            continue
        logger.log(
            action="reconcile",
            params={"action": entry.action, **entry.params},
            principal=entry.principal,
            outcome="landed" if landed else "not_landed",
            tx_hash=entry.tx_hash,
            reconciles=entry.event_id,
        )
        resolved += 1
        click.echo(f"  ✓ {label}: {'landed' if landed else 'did not land'}")

    click.echo(f"Resolved {resolved} of {len(pending)} ambiguous settlement(s).")


async def _check_pending(pending: list) -> list[tuple]:
    from worldcoins.entitlement.guard import EntitlementGuard
    from worldcoins.errors import LedgerDecodeError, RpcUnavailable
    from worldcoins.services import build_ledger
    from worldcoins.settlement.models import ActionKind

    guard = EntitlementGuard(build_ledger(load_config()))
    findings = []
    for entry in pending:
        token = entry.params.get("token_address")
        try:
            state = await guard.snapshot(entry.principal, token)
        except (RpcUnavailable, LedgerDecodeError) as e:
            findings.append((entry, None, str(e)))
            continue
        if entry.action == ActionKind.CREATE_TOKEN.value:
            landed = state.has_created_token
        else:
            landed = bool(state.has_claimed)
        findings.append((entry, landed, None))
    return findings
