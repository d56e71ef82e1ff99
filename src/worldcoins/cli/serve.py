"""worldcoins serve: start the HTTP or MCP surface after preflight checks."""

import logging
import os
import sys

import click

from worldcoins import __version__
from worldcoins.cli.main import cli
from worldcoins.config import WorldcoinsConfig, ensure_dirs, load_config
from worldcoins.errors import ConfigurationError
from worldcoins.services import Services, build_services, set_services

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@cli.command()
@click.option("--transport", default="http", type=click.Choice(["http", "stdio", "sse"]))
@click.option("--host", default="127.0.0.1", help="Bind address for http/sse")
@click.option("--port", default=8080, type=int, help="Port for http/sse")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
)
@click.option("--skip-checks", is_flag=True, default=False, help="Skip the audit chain check")
def serve(transport: str, host: str, port: int, log_level: str, skip_checks: bool) -> None:
    """Start the WorldCoins settlement service."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        # MCP stdio owns stdout
        stream=sys.stderr,
    )
    ensure_dirs()

    click.echo(err=True)
    click.echo(f"WorldCoins v{__version__}", err=True)
    click.echo("==================", err=True)

    try:
        config = load_config()
    except ConfigurationError as e:
        click.echo(f"  ✗ FATAL: {e}", err=True)
        sys.exit(1)

    services = _run_preflight_checks(config, skip_checks)
    if services is None:
        sys.exit(1)

    click.echo(err=True)
    click.echo(f"Ledger: {config.ledger} (chain {config.chain_id})", err=True)
    click.echo(f"Verifier: {config.verifier} (app {config.app_id})", err=True)
    click.echo(f"Operator: {services.signer.address}", err=True)
    click.echo(err=True)

    if transport == "http":
        import uvicorn

        from worldcoins.api import create_app

        click.echo(f"HTTP API ready on http://{host}:{port}/api", err=True)
        uvicorn.run(create_app(services), host=host, port=port, log_level=log_level)
        return

    from worldcoins.server import mcp as mcp_server

    set_services(services)
    click.echo(f"MCP server ready on {transport}", err=True)
    if transport == "sse":
        mcp_server.settings.host = host
        mcp_server.settings.port = port
        mcp_server.run(transport="sse")
    else:
        mcp_server.run(transport="stdio")


def _run_preflight_checks(config: WorldcoinsConfig, skip_checks: bool) -> Services | None:
    """Check config and the audit chain, then build services. Return None on a critical failure."""
    from worldcoins.audit.verifier import AuditVerifier

    click.echo("Preflight checks:", err=True)

    try:
        config.require_settlement_config()
    except ConfigurationError as e:
        click.echo(f"  ✗ FATAL: {e}", err=True)
        click.echo("  Run 'worldcoins init' or set the environment variables.", err=True)
        return None
    click.echo("  ✓ Settlement config complete", err=True)

    audit_path = config.resolved_audit_path()
    if skip_checks:
        click.echo("  ⚠ Audit chain check skipped", err=True)
    elif not audit_path.exists():
        click.echo(f"  ⚠ No audit log yet ({audit_path})", err=True)
    else:
        result = AuditVerifier().verify(audit_path)
        if not result.valid:
            click.echo(f"  ✗ FATAL: Audit log {audit_path} failed verification.", err=True)
            click.echo(f"    {result.first_error}", err=True)
            click.echo("    Someone may have tampered with this file.", err=True)
            return None
        click.echo(f"  ✓ Audit chain intact ({result.entries_checked} entries)", err=True)

    try:
        services = build_services(config)
    except ConfigurationError as e:
        click.echo(f"  ✗ FATAL: {e}", err=True)
        return None
    except ValueError as e:
        click.echo(f"  ✗ FATAL: Audit log {audit_path} is unreadable: {e}", err=True)
        return None
    click.echo("  ✓ Operator key loaded", err=True)

    pending = services.audit_logger.pending_reconciliation()
    if pending:
        click.echo(
            f"  ⚠ {len(pending)} ambiguous settlement(s) await reconciliation "
            "(worldcoins audit reconcile)",
            err=True,
        )

    click.echo(f"  ✓ Running as separate process (PID {os.getpid()})", err=True)
    return services
