"""Shared fixtures: paper-mode services wired to a temp audit log."""

from pathlib import Path

import pytest

from worldcoins import services as services_mod
from worldcoins.config import WorldcoinsConfig
from worldcoins.ledger.paper import PaperLedger
from worldcoins.services import Services, build_services
from worldcoins.verifier.paper import PaperVerifier


@pytest.fixture
def paper_config(tmp_path: Path) -> WorldcoinsConfig:
    return WorldcoinsConfig(
        app_id="app_staging_test",
        ledger="paper",
        verifier="paper",
        audit_path=tmp_path / "audit" / "settlements.jsonl",
        confirmation_timeout=2.0,
    )


@pytest.fixture
def services(paper_config: WorldcoinsConfig, monkeypatch: pytest.MonkeyPatch) -> Services:
    """Paper services, also installed as the process-wide services."""
    svc = build_services(paper_config, ledger=PaperLedger(), verifier=PaperVerifier())
    monkeypatch.setattr(services_mod, "_services", svc)
    return svc
