"""Operator identity: the single account that relays writes for verified users."""

import json
import os
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount

from worldcoins.config import OPERATOR_DIR, WorldcoinsConfig, normalize_private_key
from worldcoins.errors import ConfigurationError

KEYSTORE_NAME = "keystore.json"


def generate_operator() -> LocalAccount:
    """Generate a fresh operator account."""
    return Account.create()


def write_keystore(account: LocalAccount, password: str, path: Path | None = None) -> Path:
    """Write an encrypted V3 keystore with owner-read-only permissions (0o400)."""
    path = path or (OPERATOR_DIR / KEYSTORE_NAME)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        os.chmod(path, 0o600)
    keystore = Account.encrypt(account.key, password)
    path.write_text(json.dumps(keystore, indent=2))
    path.chmod(0o400)
    return path


def load_keystore(path: Path | None = None, password: str = "") -> LocalAccount:
    """Decrypt an operator keystore."""
    path = path or (OPERATOR_DIR / KEYSTORE_NAME)
    if not path.exists():
        raise FileNotFoundError(f"Operator keystore not found: {path}")
    try:
        key = Account.decrypt(json.loads(path.read_text()), password)
    except ValueError as e:
        raise ConfigurationError(f"Could not decrypt operator keystore {path}: {e}") from e
    return Account.from_key(key)


def keystore_exists(operator_dir: Path | None = None) -> bool:
    operator_dir = operator_dir or OPERATOR_DIR
    return (operator_dir / KEYSTORE_NAME).exists()


def load_operator_account(config: WorldcoinsConfig) -> LocalAccount:
    """Load the operator account from a raw key, falling back to the keystore."""
    if config.operator_key:
        return Account.from_key(normalize_private_key(config.operator_key))
    if config.operator_keystore:
        if config.operator_keystore_password is None:
            raise ConfigurationError(
                "Operator keystore is configured but WORLDCOINS_KEYSTORE_PASSWORD is not set"
            )
        try:
            return load_keystore(config.operator_keystore, config.operator_keystore_password)
        except FileNotFoundError as e:
            raise ConfigurationError(str(e)) from e
    raise ConfigurationError(
        "Operator signing key not configured. Set FACTORY_PRIVATE_KEY or run 'worldcoins init'."
    )
