"""Wire configuration into the ledger, verifier, signer and orchestrator."""

import logging
from dataclasses import dataclass

from eth_account import Account

from worldcoins.audit.logger import AuditLogger
from worldcoins.config import WorldcoinsConfig, load_config
from worldcoins.entitlement.guard import EntitlementGuard
from worldcoins.identity.operator import load_operator_account
from worldcoins.ledger.base import LedgerClient
from worldcoins.ledger.evm import EvmLedgerClient
from worldcoins.ledger.paper import STATE_FILE, PaperLedger
from worldcoins.settlement.orchestrator import SettlementOrchestrator
from worldcoins.settlement.signing import SigningAuthority
from worldcoins.verifier.base import ProofVerifier
from worldcoins.verifier.paper import PaperVerifier
from worldcoins.verifier.worldid import WorldIDVerifier

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: WorldcoinsConfig
    ledger: LedgerClient
    verifier: ProofVerifier
    signer: SigningAuthority
    guard: EntitlementGuard
    audit_logger: AuditLogger
    orchestrator: SettlementOrchestrator


def build_ledger(config: WorldcoinsConfig) -> LedgerClient:
    if config.ledger == "paper":
        return PaperLedger(STATE_FILE, poll_interval=min(config.poll_interval, 0.1))
    return EvmLedgerClient(
        config.rpc_url,
        config.factory_address,
        config.chain_id,
        confirmation_depth=config.confirmation_depth,
        poll_interval=config.poll_interval,
        rpc_timeout=config.rpc_timeout,
    )


def build_verifier(config: WorldcoinsConfig) -> ProofVerifier:
    if config.verifier == "paper":
        return PaperVerifier()
    return WorldIDVerifier(config.verifier_url, timeout=config.verifier_timeout)


def build_services(
    config: WorldcoinsConfig,
    *,
    ledger: LedgerClient | None = None,
    verifier: ProofVerifier | None = None,
) -> Services:
    """Build every collaborator for a settlement service.

    Raises ConfigurationError if a required operating parameter is missing.
    """
    config.require_settlement_config()
    ledger = ledger or build_ledger(config)
    verifier = verifier or build_verifier(config)

    if config.ledger == "paper" and not (config.operator_key or config.operator_keystore):
        account = Account.create()
        logger.warning(
            "No operator key configured; using ephemeral paper operator %s", account.address
        )
    else:
        account = load_operator_account(config)

    signer = SigningAuthority(account, ledger)
    guard = EntitlementGuard(ledger)
    audit_logger = AuditLogger(config.resolved_audit_path())
    orchestrator = SettlementOrchestrator(
        app_id=config.app_id,
        verifier=verifier,
        ledger=ledger,
        signer=signer,
        guard=guard,
        audit_logger=audit_logger,
        confirmation_timeout=config.confirmation_timeout,
    )
    logger.info(
        "Settlement services ready: ledger=%s verifier=%s operator=%s",
        config.ledger,
        config.verifier,
        signer.address,
    )
    return Services(
        config=config,
        ledger=ledger,
        verifier=verifier,
        signer=signer,
        guard=guard,
        audit_logger=audit_logger,
        orchestrator=orchestrator,
    )


_services: Services | None = None


def get_services() -> Services:
    """Process-wide services, built from config on first use."""
    global _services
    if _services is None:
        _services = build_services(load_config())
    return _services


def set_services(services: Services | None) -> None:
    """Install (or clear, with None) the process-wide services."""
    global _services
    _services = services
