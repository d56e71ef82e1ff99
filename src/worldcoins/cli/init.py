"""worldcoins init: interactive setup wizard."""

from pathlib import Path

import click

from worldcoins.cli.main import cli
from worldcoins.config import (
    OPERATOR_DIR,
    WORLD_CHAIN_SEPOLIA_ID,
    WORLD_CHAIN_SEPOLIA_RPC,
    WORLDCOINS_DIR,
    WorldcoinsConfig,
    ensure_dirs,
    write_config,
)
from worldcoins.ledger.base import checksum


@cli.command()
def init() -> None:
    """Set up WorldCoins: write config.yaml and create the operator keystore."""
    click.echo()
    click.echo("WorldCoins Setup")
    click.echo("================")
    click.echo()

    ensure_dirs()

    config = _prompt_config()
    keystore_path = _setup_operator()
    if keystore_path is not None:
        config.operator_keystore = keystore_path

    path = write_config(config, WORLDCOINS_DIR / "config.yaml")
    click.echo(f"  ✓ Config written to {path}")
    click.echo()
    if config.operator_keystore:
        click.echo("Set WORLDCOINS_KEYSTORE_PASSWORD before serving to unlock the keystore.")
    click.echo(f"Ready. Start with: worldcoins serve (ledger: {config.ledger})")


def _prompt_config() -> WorldcoinsConfig:
    click.echo("Service configuration...")
    app_id = click.prompt("  World ID app ID (app_...)")
    ledger = click.prompt(
        "  Ledger", default="evm", type=click.Choice(["evm", "paper"]), show_choices=True
    )
    verifier = click.prompt(
        "  Proof verifier",
        default="worldid" if ledger == "evm" else "paper",
        type=click.Choice(["worldid", "paper"]),
        show_choices=True,
    )

    config = WorldcoinsConfig(app_id=app_id.strip(), ledger=ledger, verifier=verifier)
    if ledger == "evm":
        while True:
            factory = click.prompt("  Token factory contract address")
            try:
                config.factory_address = checksum(factory.strip())
                break
            except ValueError:
                click.echo("  ✗ Not a valid address, try again.")
        config.rpc_url = click.prompt("  World Chain RPC URL", default=WORLD_CHAIN_SEPOLIA_RPC)
        config.chain_id = click.prompt("  Chain ID", default=WORLD_CHAIN_SEPOLIA_ID, type=int)
    click.echo()
    return config


def _setup_operator() -> Path | None:
    """Generate the operator account and store it as an encrypted keystore."""
    from worldcoins.identity.operator import (
        KEYSTORE_NAME,
        generate_operator,
        keystore_exists,
        write_keystore,
    )

    click.echo("Generating operator account...")
    keystore_path = OPERATOR_DIR / KEYSTORE_NAME

    if keystore_exists(OPERATOR_DIR):
        click.echo(f"  Keystore already exists at {keystore_path}")
        if not click.confirm("  Overwrite existing keystore?", default=False):
            click.echo("  Keeping existing keystore.")
            click.echo()
            return keystore_path

    if not click.confirm(
        "  Create an operator keystore? (No if you will set FACTORY_PRIVATE_KEY)", default=True
    ):
        click.echo()
        return None

    password = click.prompt("  Keystore password", hide_input=True, confirmation_prompt=True)
    account = generate_operator()
    write_keystore(account, password, keystore_path)

    click.echo(f"  ✓ Keystore: {keystore_path} (owner-read only)")
    click.echo(f"  ✓ Operator address: {account.address}")
    click.echo("  Fund this address with gas on World Chain before serving.")
    click.echo()
    return keystore_path
