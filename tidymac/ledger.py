"""Persistent undo ledger.

Sessions and their records live in SQLite next to the staging area that holds
soft-deleted content. Writes require the exclusive writer lock; a second
writer is rejected with LedgerBusy rather than queued.
"""

from __future__ import annotations

import contextlib
import datetime as dt
import fcntl
import logging
import os
import shutil
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Iterator

from tidymac.common import APP_NAME, ensure_parent, now_utc_iso
from tidymac.errors import LedgerBusy, LedgerError, SessionNotFound
from tidymac.models import (
    Category,
    CleanMode,
    RestoreOutcome,
    RestoreResult,
    RestoreStatus,
    SessionState,
    UndoRecord,
    UndoSession,
)


def new_session_id() -> str:
    return f"{dt.datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


def remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
    elif path.is_dir():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)


class UndoLedger:
    """Session index plus append-only record log for soft and hard cleanups."""

    def __init__(
        self,
        data_dir: Path,
        retention_days: int = 7,
        logger: logging.Logger | None = None,
    ):
        self.data_dir = Path(data_dir)
        self.staging_dir = self.data_dir / "staging"
        self.db_path = self.data_dir / "ledger.db"
        self.lock_path = self.data_dir / "ledger.lock"
        self.retention_days = retention_days
        self.logger = logger or logging.getLogger(APP_NAME)
        self._thread_lock = threading.Lock()

        ensure_parent(self.db_path)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute("PRAGMA synchronous=NORMAL;")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS sessions (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              session_id TEXT NOT NULL UNIQUE,
              created_at TEXT NOT NULL,
              mode TEXT NOT NULL,
              profile TEXT,
              state TEXT NOT NULL,
              expires_at TEXT,
              retired_at TEXT
            );

            CREATE TABLE IF NOT EXISTS records (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              session_id TEXT NOT NULL,
              original_path TEXT NOT NULL,
              quarantine_path TEXT,
              size_bytes INTEGER NOT NULL,
              category TEXT NOT NULL,
              irreversible INTEGER NOT NULL DEFAULT 0,
              created_at TEXT NOT NULL,
              restored_at TEXT,
              purged_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_sessions_state ON sessions(state, created_at);
            CREATE INDEX IF NOT EXISTS idx_records_session ON records(session_id);
            """
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ------------------------------ locking --------------------------------- #

    @contextlib.contextmanager
    def exclusive(self) -> Iterator[None]:
        if not self._thread_lock.acquire(blocking=False):
            raise LedgerBusy("Another cleanup is writing to the undo ledger")
        fh = None
        try:
            ensure_parent(self.lock_path)
            fh = open(self.lock_path, "a+", encoding="utf-8")
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as exc:
                raise LedgerBusy("Another process is writing to the undo ledger") from exc
            yield
        finally:
            if fh is not None:
                with contextlib.suppress(OSError):
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
                fh.close()
            self._thread_lock.release()

    # ----------------------------- writing ---------------------------------- #

    def begin_session(self, mode: CleanMode, profile: str | None = None) -> str:
        session_id = new_session_id()
        created = dt.datetime.now(dt.timezone.utc).replace(microsecond=0)
        if mode is CleanMode.HARD:
            state = SessionState.AUDIT
            expires = None
        else:
            state = SessionState.PENDING
            expires = (created + dt.timedelta(days=self.retention_days)).isoformat()
        try:
            self.conn.execute(
                "INSERT INTO sessions(session_id, created_at, mode, profile, state, expires_at) VALUES (?, ?, ?, ?, ?, ?)",
                (session_id, created.isoformat(), mode.value, profile, state.value, expires),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise LedgerError(f"Cannot create undo session: {exc}") from exc
        return session_id

    def staging_path(self, session_id: str, index: int) -> Path:
        return self.staging_dir / session_id / "files" / f"{index:06d}"

    def append_record(
        self,
        session_id: str,
        original_path: str,
        quarantine_path: str | None,
        size_bytes: int,
        category: Category,
        irreversible: bool = False,
    ) -> int:
        try:
            cur = self.conn.execute(
                """
                INSERT INTO records(session_id, original_path, quarantine_path, size_bytes, category, irreversible, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    original_path,
                    quarantine_path,
                    int(size_bytes),
                    category.value,
                    1 if irreversible else 0,
                    now_utc_iso(),
                ),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise LedgerError(f"Cannot record {original_path}: {exc}") from exc
        return int(cur.lastrowid)

    def finalize_session(self, session_id: str) -> UndoSession:
        try:
            self.conn.execute(
                "UPDATE sessions SET state=? WHERE session_id=? AND state=?",
                (SessionState.OPEN.value, session_id, SessionState.PENDING.value),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise LedgerError(f"Cannot finalize session {session_id}: {exc}") from exc
        return self.get(session_id)

    def discard_session(self, session_id: str) -> None:
        try:
            self.conn.execute("DELETE FROM records WHERE session_id=?", (session_id,))
            self.conn.execute("DELETE FROM sessions WHERE session_id=?", (session_id,))
            self.conn.commit()
        except sqlite3.Error as exc:
            raise LedgerError(f"Cannot discard session {session_id}: {exc}") from exc
        self._prune_staging(session_id)

    # ----------------------------- reading ---------------------------------- #

    def _records(self, session_id: str) -> list[UndoRecord]:
        rows = self.conn.execute(
            "SELECT * FROM records WHERE session_id=? ORDER BY id",
            (session_id,),
        ).fetchall()
        return [
            UndoRecord(
                record_id=int(r["id"]),
                session_id=r["session_id"],
                original_path=r["original_path"],
                quarantine_path=r["quarantine_path"],
                size_bytes=int(r["size_bytes"]),
                category=Category(r["category"]),
                irreversible=bool(r["irreversible"]),
                restored_at=r["restored_at"],
                purged_at=r["purged_at"],
            )
            for r in rows
        ]

    def _session(self, row: sqlite3.Row) -> UndoSession:
        return UndoSession(
            session_id=row["session_id"],
            created_at=row["created_at"],
            mode=CleanMode(row["mode"]),
            state=SessionState(row["state"]),
            profile=row["profile"],
            expires_at=row["expires_at"],
            records=self._records(row["session_id"]),
        )

    def list(self, include_retired: bool = False) -> list[UndoSession]:
        states = [SessionState.OPEN.value, SessionState.AUDIT.value]
        if include_retired:
            states.append(SessionState.RETIRED.value)
        marks = ",".join("?" for _ in states)
        rows = self.conn.execute(
            f"SELECT * FROM sessions WHERE state IN ({marks}) ORDER BY created_at DESC, id DESC",
            states,
        ).fetchall()
        return [self._session(r) for r in rows]

    def get(self, session_id: str) -> UndoSession:
        row = self.conn.execute(
            "SELECT * FROM sessions WHERE session_id=? AND state != ?",
            (session_id, SessionState.PENDING.value),
        ).fetchone()
        if row is None:
            raise SessionNotFound(f"Undo session not found: {session_id}")
        return self._session(row)

    # ----------------------------- restoring -------------------------------- #

    def restore(self, session_id: str) -> RestoreResult:
        session = self.get(session_id)
        result = RestoreResult(session_id=session_id)

        with self.exclusive():
            for rec in session.records:
                if rec.irreversible:
                    result.outcomes.append(
                        RestoreOutcome(rec.original_path, RestoreStatus.IRREVERSIBLE, rec.size_bytes, "permanently deleted")
                    )
                    continue
                if rec.restored_at is not None:
                    continue
                qpath = Path(rec.quarantine_path) if rec.quarantine_path else None
                if rec.purged_at is not None or qpath is None or not os.path.lexists(qpath):
                    if rec.purged_at is None:
                        self._mark(rec.record_id, "purged_at")
                    result.outcomes.append(
                        RestoreOutcome(rec.original_path, RestoreStatus.MISSING, rec.size_bytes, "quarantined content no longer exists")
                    )
                    continue
                if os.path.lexists(rec.original_path):
                    result.outcomes.append(
                        RestoreOutcome(rec.original_path, RestoreStatus.CONFLICT, rec.size_bytes, "original path is occupied")
                    )
                    self.logger.warning("restore_conflict session=%s path=%s", session_id, rec.original_path)
                    continue
                try:
                    Path(rec.original_path).parent.mkdir(parents=True, exist_ok=True)
                    shutil.move(str(qpath), rec.original_path)
                except Exception as exc:  # pylint: disable=broad-except
                    result.outcomes.append(
                        RestoreOutcome(rec.original_path, RestoreStatus.FAILED, rec.size_bytes, str(exc))
                    )
                    self.logger.error("restore_failed session=%s path=%s err=%s", session_id, rec.original_path, exc)
                    continue
                self._mark(rec.record_id, "restored_at")
                result.outcomes.append(RestoreOutcome(rec.original_path, RestoreStatus.SUCCEEDED, rec.size_bytes))
                self.logger.info("restore_success session=%s path=%s", session_id, rec.original_path)

            result.retired = self._retire_if_done(session_id)

        return result

    def _mark(self, record_id: int, column: str) -> None:
        try:
            self.conn.execute(f"UPDATE records SET {column}=? WHERE id=?", (now_utc_iso(), record_id))
            self.conn.commit()
        except sqlite3.Error as exc:
            raise LedgerError(f"Cannot update record {record_id}: {exc}") from exc

    def _retire_if_done(self, session_id: str) -> bool:
        row = self.conn.execute(
            """
            SELECT COUNT(*) AS c FROM records
            WHERE session_id=? AND irreversible=0 AND restored_at IS NULL AND purged_at IS NULL
            """,
            (session_id,),
        ).fetchone()
        if int(row["c"]) > 0:
            return False
        state = self.conn.execute("SELECT state FROM sessions WHERE session_id=?", (session_id,)).fetchone()
        if state is None or state["state"] != SessionState.OPEN.value:
            return False
        self.conn.execute(
            "UPDATE sessions SET state=?, retired_at=? WHERE session_id=?",
            (SessionState.RETIRED.value, now_utc_iso(), session_id),
        )
        self.conn.commit()
        self._prune_staging(session_id)
        self.logger.info("session_retired session=%s", session_id)
        return True

    def _prune_staging(self, session_id: str) -> None:
        """Remove the session's staging directories bottom-up while they are empty."""
        base = self.staging_dir / session_id
        if not base.exists():
            return
        for current, _dirs, files in os.walk(base, topdown=False):
            if not files:
                with contextlib.suppress(OSError):
                    os.rmdir(current)

    # ----------------------------- retention -------------------------------- #

    def purge_session(self, session_id: str) -> dict[str, Any]:
        session = self.get(session_id)
        purged = 0
        freed = 0
        with self.exclusive():
            for rec in session.records:
                if not rec.actionable:
                    continue
                if rec.quarantine_path:
                    qpath = Path(rec.quarantine_path)
                    try:
                        remove_path(qpath)
                    except OSError as exc:
                        self.logger.error("purge_failed session=%s path=%s err=%s", session_id, qpath, exc)
                        continue
                self._mark(rec.record_id, "purged_at")
                purged += 1
                freed += rec.size_bytes
            self._retire_if_done(session_id)
        self.logger.info("session_purged session=%s records=%d bytes=%d", session_id, purged, freed)
        return {"session_id": session_id, "records": purged, "bytes": freed}

    def purge_expired(self, now: dt.datetime | None = None) -> dict[str, Any]:
        ref = (now or dt.datetime.now(dt.timezone.utc)).replace(microsecond=0).isoformat()
        rows = self.conn.execute(
            "SELECT session_id FROM sessions WHERE state=? AND expires_at IS NOT NULL AND expires_at <= ?",
            (SessionState.OPEN.value, ref),
        ).fetchall()
        sessions = 0
        records = 0
        freed = 0
        for r in rows:
            out = self.purge_session(r["session_id"])
            sessions += 1
            records += out["records"]
            freed += out["bytes"]
        return {"sessions": sessions, "records": records, "bytes": freed}

    def staging_size(self) -> int:
        row = self.conn.execute(
            """
            SELECT COALESCE(SUM(r.size_bytes), 0) AS s
            FROM records r JOIN sessions s ON s.session_id = r.session_id
            WHERE s.state = ? AND r.irreversible=0 AND r.restored_at IS NULL AND r.purged_at IS NULL
            """,
            (SessionState.OPEN.value,),
        ).fetchone()
        return int(row["s"])
