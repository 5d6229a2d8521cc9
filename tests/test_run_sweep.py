from __future__ import annotations

import json

from scripts import run_sweep
from stampwallet.repositories.wallet_pass import WalletPassRepository
from stampwallet.services.lifecycle import PassLifecycleManager
from tests.fakes import FakePushClient


def test_dry_run_prints_counts_and_succeeds(monkeypatch, capsys, fake_db, clock) -> None:
    managers = []

    def _factory() -> PassLifecycleManager:
        manager = PassLifecycleManager(push_client=FakePushClient(), clock=clock)
        managers.append(manager)
        return manager

    monkeypatch.setattr(run_sweep, "create_lifecycle_manager", _factory)

    exit_code = run_sweep.main(["--dry-run", "--grace-days", "10"])

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert output == {"expired": 0, "notified": 0, "cleaned": 0, "errors": [], "dry_run": True}
    assert fake_db.writes() == []


def test_errors_give_nonzero_exit(monkeypatch, capsys, fake_db, clock) -> None:
    fake_db.tables["wallet_passes"] = [{
        "id": "pass-1",
        "status": "completed",
        "update_tag": 1,
        "completed_at": "2026-01-01T00:00:00.000000+00:00",
        "scheduled_expiration_at": "2026-01-31T00:00:00.000000+00:00",
    }]

    def _reject(*args, **kwargs):
        raise RuntimeError("write rejected")

    monkeypatch.setattr(run_sweep, "create_lifecycle_manager", lambda: PassLifecycleManager(clock=clock))
    monkeypatch.setattr(WalletPassRepository, "update_if_status", staticmethod(_reject))

    exit_code = run_sweep.main([])

    assert exit_code == 1
    assert json.loads(capsys.readouterr().out)["errors"][0]["phase"] == "expire"