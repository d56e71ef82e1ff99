"""worldcoins tokens: read-only queries against the token factory."""

import asyncio
import json

import click

from worldcoins.cli.main import cli
from worldcoins.config import load_config
from worldcoins.ledger.base import UNIT


def _ledger():
    from worldcoins.services import build_ledger

    return build_ledger(load_config())


def _units(value: str) -> str:
    return f"{int(value) / UNIT:,.0f}"


@cli.group()
def tokens() -> None:
    """Token directory commands."""


@tokens.command("list")
@click.option("--user", "user_address", default=None, help="Tokens claimed or created by this")
@click.option("--creator", "creator_address", default=None, help="The token created by this")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print raw JSON")
def list_tokens(user_address: str | None, creator_address: str | None, as_json: bool) -> None:
    """List tokens created through the factory."""
    from worldcoins.tools.tokens import handle_tokens_query

    body = {"userAddress": user_address, "creatorAddress": creator_address}
    response = asyncio.run(handle_tokens_query(body, ledger=_ledger()))

    if as_json:
        click.echo(json.dumps(response, indent=2))
    if not response["success"]:
        if not as_json:
            click.echo(f"Error: {response['error']}")
        raise SystemExit(1)
    if as_json:
        return

    if "token" in response:
        found = [response["token"]] if response["token"] else []
    else:
        found = response.get("tokens", response.get("data", []))
    if not found:
        click.echo("No tokens found.")
        return

    for token in found:
        stats = token["claimStats"]
        click.echo(f"  {token['symbol']:<8} {token['name']:<24} {token['address']}")
        click.echo(
            f"    supply {_units(token['totalSupply'])} / {_units(token['maxSupply'])}"
            f"  claimers {stats['claimers']}  creator {token['creator']}"
        )
        if "userBalance" in token:
            role = "creator" if token["userIsCreator"] else "claimer"
            click.echo(f"    balance {_units(token['userBalance'])} ({role})")


@tokens.command()
@click.argument("address")
@click.option("--token", "token_address", default=None, help="Also check this token's claim")
def status(address: str, token_address: str | None) -> None:
    """Show what ADDRESS is still entitled to do."""
    from worldcoins.entitlement.guard import EntitlementGuard
    from worldcoins.errors import LedgerDecodeError, RpcUnavailable
    from worldcoins.ledger.base import checksum

    try:
        principal = checksum(address)
        token = checksum(token_address) if token_address else None
    except ValueError as e:
        click.echo(f"Error: {e}")
        raise SystemExit(1) from e

    try:
        state = asyncio.run(EntitlementGuard(_ledger()).snapshot(principal, token))
    except (RpcUnavailable, LedgerDecodeError) as e:
        click.echo(f"Error: ledger read failed: {e}")
        raise SystemExit(1) from e

    click.echo(f"Address: {principal}")
    click.echo(f"  Created a token: {'yes' if state.has_created_token else 'no (may create one)'}")
    if token is not None:
        if not state.is_valid_token:
            click.echo(f"  Token {token}: not a factory token")
        elif state.has_claimed:
            click.echo(f"  Token {token}: already claimed")
        else:
            click.echo(f"  Token {token}: not claimed (may claim)")
