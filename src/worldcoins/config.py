"""Global config loading from ~/.worldcoins/ and the process environment."""

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from worldcoins.errors import ConfigurationError

WORLDCOINS_DIR = Path.home() / ".worldcoins"
OPERATOR_DIR = WORLDCOINS_DIR / "operator"
AUDIT_DIR = WORLDCOINS_DIR / "audit"
PAPER_DIR = WORLDCOINS_DIR / "paper"

WORLD_CHAIN_SEPOLIA_RPC = "https://worldchain-sepolia.g.alchemy.com/public"
WORLD_CHAIN_SEPOLIA_ID = 4801

# environment variable -> config field
ENV_OVERRIDES = {
    "APP_ID": "app_id",
    "FACTORY_ADDRESS": "factory_address",
    "FACTORY_PRIVATE_KEY": "operator_key",
    "WORLD_CHAIN_RPC_URL": "rpc_url",
    "WORLDCOINS_LEDGER": "ledger",
    "WORLDCOINS_VERIFIER": "verifier",
    "WORLDCOINS_KEYSTORE_PASSWORD": "operator_keystore_password",
}

_PRIVATE_KEY_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


class WorldcoinsConfig(BaseModel):
    app_id: str | None = None
    factory_address: str | None = None
    rpc_url: str = WORLD_CHAIN_SEPOLIA_RPC
    chain_id: int = WORLD_CHAIN_SEPOLIA_ID
    operator_key: str | None = None
    operator_keystore: Path | None = None
    operator_keystore_password: str | None = None
    ledger: str = "evm"
    verifier: str = "worldid"
    verifier_url: str = "https://developer.worldcoin.org"
    verifier_timeout: float = 10.0
    rpc_timeout: float = 10.0
    confirmation_timeout: float = 60.0
    confirmation_depth: int = 1
    poll_interval: float = 1.0
    audit_path: Path | None = None

    def resolved_audit_path(self) -> Path:
        return self.audit_path or (AUDIT_DIR / "settlements.jsonl")

    def require_settlement_config(self) -> None:
        """Raise ConfigurationError if a parameter needed to settle actions is missing."""
        if not self.app_id:
            raise ConfigurationError("World ID app ID not configured. Set APP_ID or app_id.")
        if self.ledger not in ("evm", "paper"):
            raise ConfigurationError(f"Unknown ledger '{self.ledger}'. Use 'evm' or 'paper'.")
        if self.verifier not in ("worldid", "paper"):
            raise ConfigurationError(
                f"Unknown verifier '{self.verifier}'. Use 'worldid' or 'paper'."
            )
        if self.ledger == "paper":
            if self.operator_key:
                normalize_private_key(self.operator_key)
            return
        if not self.factory_address:
            raise ConfigurationError(
                "Factory contract address not configured. Set FACTORY_ADDRESS or factory_address."
            )
        if not self.rpc_url:
            raise ConfigurationError("Ledger RPC URL not configured. Set WORLD_CHAIN_RPC_URL.")
        if not self.operator_key and not self.operator_keystore:
            raise ConfigurationError(
                "Operator signing key not configured. "
                "Set FACTORY_PRIVATE_KEY or run 'worldcoins init' to create a keystore."
            )
        if self.operator_key:
            normalize_private_key(self.operator_key)


def normalize_private_key(key: str) -> str:
    """Return the key with a 0x prefix, or raise if it is not 32 bytes of hex."""
    key = key.strip()
    if not key.startswith("0x"):
        key = f"0x{key}"
    if not _PRIVATE_KEY_RE.match(key):
        raise ConfigurationError(
            "Invalid private key format. Must be 64 hex characters with 0x prefix"
        )
    return key


def ensure_dirs() -> None:
    """Create the ~/.worldcoins/ directory structure if it doesn't exist."""
    for d in [WORLDCOINS_DIR, OPERATOR_DIR, AUDIT_DIR, PAPER_DIR]:
        d.mkdir(parents=True, exist_ok=True)


def load_config(
    path: Path | None = None, environ: dict[str, str] | None = None
) -> WorldcoinsConfig:
    """Load config from ~/.worldcoins/config.yaml, then apply environment overrides."""
    config_path = path or (WORLDCOINS_DIR / "config.yaml")
    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    env = os.environ if environ is None else environ
    for var, field in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            data[field] = value

    try:
        return WorldcoinsConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e


def write_config(config: WorldcoinsConfig, path: Path | None = None) -> Path:
    """Persist config as YAML, leaving secrets out of the file."""
    path = path or (WORLDCOINS_DIR / "config.yaml")
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(
        mode="json",
        exclude={"operator_key", "operator_keystore_password"},
        exclude_none=True,
    )
    path.write_text(yaml.dump(data, sort_keys=False, default_flow_style=False))
    return path
