"""Tests for dry-run, soft and hard execution."""

import os
from pathlib import Path

import pytest

from tidymac.errors import LedgerBusy, LedgerError
from tidymac.executor import Executor
from tidymac.models import ActionOutcome, CleanMode, CleanPlan, RestoreStatus, RiskTier


@pytest.fixture
def executor(ledger, home, logger):
    return Executor(ledger, home, logger=logger)


@pytest.fixture
def targets(home, make_file, make_finding):
    """Five cache directories, each holding one file with distinct content."""
    findings = []
    for i in range(5):
        path = home / "Library" / "Caches" / f"app{i}"
        make_file(path / "data.bin", 4096, fill=bytes([65 + i]))
        findings.append(make_finding(path, name=f"App {i} Cache"))
    return findings


def snapshot(paths):
    return {p: (Path(p) / "data.bin", (Path(p) / "data.bin").read_bytes()) for p in paths}


def test_dry_run_never_mutates_and_is_repeatable(executor, ledger, targets):
    plan = CleanPlan(targets, mode=CleanMode.DRY_RUN)
    first = executor.execute(plan)
    second = executor.execute(plan)

    assert all(os.path.exists(f.path) for f in targets)
    assert first.estimated_bytes == second.estimated_bytes == sum(f.size_bytes for f in targets)
    assert first.count(ActionOutcome.SUCCEEDED) == 5
    assert first.bytes_reclaimed == 0
    assert first.session is None
    assert ledger.list() == []


def test_dry_run_reports_policy_skips(executor, home, make_file, make_finding):
    risky = make_finding(make_file(home / "Library" / "Containers" / "x" / "f"), risk=RiskTier.RISKY)
    result = executor.execute(CleanPlan([risky], mode=CleanMode.DRY_RUN, max_risk=RiskTier.SAFE))
    assert result.actions[0].outcome is ActionOutcome.SKIPPED
    assert result.actions[0].reason == "risk_risky_above_safe"
    assert result.estimated_bytes == 0


def test_soft_round_trip_restores_content(executor, ledger, targets):
    before = snapshot([f.path for f in targets])

    result = executor.execute(CleanPlan(targets, mode=CleanMode.SOFT, profile="quick"))
    assert result.count(ActionOutcome.SUCCEEDED) == 5
    assert result.bytes_reclaimed == sum(f.size_bytes for f in targets)
    assert not any(os.path.exists(f.path) for f in targets)
    assert result.session is not None
    assert len(result.session.records) == 5
    assert [s.session_id for s in ledger.list()] == [result.session.session_id]

    restored = ledger.restore(result.session.session_id)
    assert restored.restored_count == 5
    assert restored.retired
    for data_file, content in before.values():
        assert data_file.read_bytes() == content

    assert ledger.list() == []
    assert [s.session_id for s in ledger.list(include_retired=True)] == [result.session.session_id]


def test_one_failure_does_not_abort_the_batch(executor, ledger, targets, monkeypatch):
    original = executor._move_to_staging
    broken = targets[2].path

    def move(path, target):
        if path == broken:
            raise PermissionError(13, "Permission denied", path)
        original(path, target)

    monkeypatch.setattr(executor, "_move_to_staging", move)
    result = executor.execute(CleanPlan(targets, mode=CleanMode.SOFT))

    outcomes = [a.outcome for a in result.actions]
    assert outcomes.count(ActionOutcome.SUCCEEDED) == 4
    assert outcomes[2] is ActionOutcome.FAILED
    assert os.path.exists(broken)
    assert len(result.session.records) == 4
    assert any(broken in w for w in result.warnings)


def test_soft_with_no_success_creates_no_session(executor, ledger, targets, monkeypatch):
    def move(path, target):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(executor, "_move_to_staging", move)
    result = executor.execute(CleanPlan(targets, mode=CleanMode.SOFT))

    assert result.count(ActionOutcome.FAILED) == 5
    assert result.session is None
    assert ledger.list() == []
    assert all(os.path.exists(f.path) for f in targets)


def test_ledger_write_failure_rolls_back_soft_batch(executor, ledger, targets, monkeypatch):
    original = ledger.append_record
    calls = {"n": 0}

    def append(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise LedgerError("disk I/O error")
        return original(*args, **kwargs)

    monkeypatch.setattr(ledger, "append_record", append)
    before = snapshot([f.path for f in targets])

    with pytest.raises(LedgerError):
        executor.execute(CleanPlan(targets, mode=CleanMode.SOFT))

    for data_file, content in before.values():
        assert data_file.read_bytes() == content
    assert ledger.list(include_retired=True) == []
    assert ledger.staging_size() == 0


def test_hard_mode_is_irreversible(executor, ledger, targets):
    result = executor.execute(CleanPlan(targets, mode=CleanMode.HARD))

    assert result.count(ActionOutcome.SUCCEEDED) == 5
    assert not any(os.path.exists(f.path) for f in targets)
    assert result.session is None
    assert result.audit_id is not None

    for session in ledger.list():
        assert session.records
        assert all(r.irreversible for r in session.records)

    restored = ledger.restore(result.audit_id)
    assert restored.restored_count == 0
    assert {o.status for o in restored.outcomes} == {RestoreStatus.IRREVERSIBLE}
    assert not any(os.path.exists(f.path) for f in targets)


def test_hard_mode_failure_stays_item_level(executor, targets, monkeypatch):
    original = executor._delete_permanently

    def delete(path):
        if path == targets[0].path:
            raise PermissionError(1, "Operation not permitted", path)
        original(path)

    monkeypatch.setattr(executor, "_delete_permanently", delete)
    result = executor.execute(CleanPlan(targets, mode=CleanMode.HARD))
    assert result.count(ActionOutcome.FAILED) == 1
    assert result.count(ActionOutcome.SUCCEEDED) == 4


def test_protected_locations_are_never_touched(executor, home, make_file, make_finding):
    make_file(home / "Documents" / "thesis.tex")
    finding = make_finding(home / "Documents")
    result = executor.execute(CleanPlan([finding], mode=CleanMode.HARD))
    assert result.actions[0].outcome is ActionOutcome.SKIPPED
    assert result.actions[0].reason == "protected_path"
    assert (home / "Documents" / "thesis.tex").exists()


def test_vanished_target_is_skipped(executor, home, make_finding):
    result = executor.execute(CleanPlan([make_finding(home / "gone")], mode=CleanMode.SOFT))
    assert result.actions[0].outcome is ActionOutcome.SKIPPED
    assert result.actions[0].reason == "path_vanished"
    assert result.session is None


def test_risk_ceiling_is_enforced_before_mutation(executor, home, make_file, make_finding):
    path = make_file(home / "Library" / "Containers" / "x" / "f")
    finding = make_finding(path.parent, risk=RiskTier.RISKY)
    result = executor.execute(CleanPlan([finding], mode=CleanMode.SOFT, max_risk=RiskTier.CAUTION))
    assert result.actions[0].outcome is ActionOutcome.SKIPPED
    assert path.exists()


def test_concurrent_writer_is_rejected(executor, ledger, targets):
    with ledger.exclusive():
        with pytest.raises(LedgerBusy):
            executor.execute(CleanPlan(targets, mode=CleanMode.SOFT))
        dry = executor.execute(CleanPlan(targets, mode=CleanMode.DRY_RUN))
    assert dry.count(ActionOutcome.SUCCEEDED) == 5
    assert all(os.path.exists(f.path) for f in targets)
