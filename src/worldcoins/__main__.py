"""CLI entrypoint for WorldCoins."""

import worldcoins.cli.audit_cmd  # noqa: F401
import worldcoins.cli.init  # noqa: F401
import worldcoins.cli.serve  # noqa: F401
import worldcoins.cli.tokens_cmd  # noqa: F401
from worldcoins.cli.main import cli


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
