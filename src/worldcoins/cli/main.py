"""Click CLI group for WorldCoins."""

import click


@click.group()
@click.version_option(package_name="worldcoins")
def cli() -> None:
    """WorldCoins: World ID-gated token creation and claims, settled on World Chain."""
