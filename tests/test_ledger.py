"""Tests for undo sessions: listing, restore statuses, retention."""

import datetime as dt
import os
from pathlib import Path

import pytest

from tidymac.errors import LedgerBusy, SessionNotFound
from tidymac.executor import Executor
from tidymac.ledger import UndoLedger, new_session_id
from tidymac.models import Category, CleanMode, CleanPlan, RestoreStatus, SessionState


@pytest.fixture
def soft_clean(ledger, home, logger, make_file, make_finding):
    """Soft-clean ``count`` fresh files and return (session, paths)."""
    executor = Executor(ledger, home, logger=logger)
    counter = {"n": 0}

    def _clean(count=1):
        paths = []
        for _ in range(count):
            counter["n"] += 1
            paths.append(make_file(home / "Library" / "Caches" / f"item{counter['n']}.cache", 4096))
        result = executor.execute(CleanPlan([make_finding(p) for p in paths], mode=CleanMode.SOFT))
        return result.session, paths

    return _clean


def test_session_ids_are_unique():
    assert new_session_id() != new_session_id()


def test_list_is_newest_first(ledger, soft_clean):
    first, _ = soft_clean()
    second, _ = soft_clean()
    assert [s.session_id for s in ledger.list()] == [second.session_id, first.session_id]


def test_pending_sessions_are_invisible(ledger):
    sid = ledger.begin_session(CleanMode.SOFT, "quick")
    assert ledger.list() == []
    with pytest.raises(SessionNotFound):
        ledger.get(sid)


def test_unknown_session_is_rejected(ledger):
    with pytest.raises(SessionNotFound):
        ledger.restore("20200101_000000_deadbeef")
    with pytest.raises(SessionNotFound):
        ledger.purge_session("nope")


def test_session_metadata(ledger, soft_clean):
    session, paths = soft_clean(2)
    assert session.state is SessionState.OPEN
    assert session.mode is CleanMode.SOFT
    assert session.expires_at is not None
    assert session.total_bytes == 2 * 4096
    for rec, path in zip(session.records, paths):
        assert rec.original_path == str(path)
        assert rec.category is Category.CACHE
        assert Path(rec.quarantine_path).is_relative_to(ledger.staging_dir)
        assert os.path.exists(rec.quarantine_path)
    assert ledger.staging_size() == 2 * 4096


def test_restore_conflict_leaves_both_copies(ledger, soft_clean):
    session, (path,) = soft_clean()
    path.write_text("a newer file", encoding="utf-8")

    result = ledger.restore(session.session_id)

    assert [o.status for o in result.outcomes] == [RestoreStatus.CONFLICT]
    assert path.read_text(encoding="utf-8") == "a newer file"
    assert os.path.exists(session.records[0].quarantine_path)
    assert not result.retired
    listed = ledger.get(session.session_id)
    assert listed.state is SessionState.OPEN
    assert listed.records[0].actionable


def test_partial_restore_keeps_only_unresolved_records(ledger, soft_clean):
    session, (blocked, free) = soft_clean(2)
    blocked.write_text("occupied", encoding="utf-8")

    first = ledger.restore(session.session_id)
    assert {o.original_path: o.status for o in first.outcomes} == {
        str(blocked): RestoreStatus.CONFLICT,
        str(free): RestoreStatus.SUCCEEDED,
    }
    assert free.read_bytes() == b"x" * 4096
    remaining = [r for r in ledger.get(session.session_id).records if r.actionable]
    assert [r.original_path for r in remaining] == [str(blocked)]
    assert [s.session_id for s in ledger.list()] == [session.session_id]

    blocked.unlink()
    second = ledger.restore(session.session_id)
    assert [o.status for o in second.outcomes] == [RestoreStatus.SUCCEEDED]
    assert second.retired
    assert ledger.list() == []


def test_missing_quarantine_is_reported_and_retires(ledger, soft_clean):
    session, (path,) = soft_clean()
    os.remove(session.records[0].quarantine_path)

    result = ledger.restore(session.session_id)

    assert [o.status for o in result.outcomes] == [RestoreStatus.MISSING]
    assert not path.exists()
    assert result.retired
    retired = ledger.get(session.session_id)
    assert retired.state is SessionState.RETIRED
    assert retired.records[0].purged_at is not None


def test_purge_expired_removes_staged_content(ledger, soft_clean):
    session, _ = soft_clean(2)
    staged = [r.quarantine_path for r in session.records]

    assert ledger.purge_expired()["sessions"] == 0
    later = dt.datetime.now(dt.timezone.utc) + dt.timedelta(days=8)
    out = ledger.purge_expired(now=later)

    assert out == {"sessions": 1, "records": 2, "bytes": 2 * 4096}
    assert not any(os.path.exists(p) for p in staged)
    assert ledger.list() == []
    assert ledger.staging_size() == 0
    restored = ledger.restore(session.session_id)
    assert {o.status for o in restored.outcomes} == {RestoreStatus.MISSING}


def test_purge_one_session(ledger, soft_clean):
    keep, _ = soft_clean()
    drop, _ = soft_clean()
    out = ledger.purge_session(drop.session_id)
    assert out["records"] == 1
    assert [s.session_id for s in ledger.list()] == [keep.session_id]


def test_ledger_survives_reopen(data_dir, logger, soft_clean, ledger):
    session, _ = soft_clean()
    other = UndoLedger(data_dir, logger=logger)
    try:
        assert [s.session_id for s in other.list()] == [session.session_id]
    finally:
        other.close()


def test_second_writer_in_another_handle_is_rejected(data_dir, logger, ledger):
    other = UndoLedger(data_dir, logger=logger)
    try:
        with ledger.exclusive():
            with pytest.raises(LedgerBusy):
                with other.exclusive():
                    pass
    finally:
        other.close()
