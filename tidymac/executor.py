"""Apply a clean plan in dry-run, soft (quarantine) or hard (permanent) mode.

Items are processed independently: one failure is recorded and the batch
continues. The only request-level failures are a busy ledger and, in soft
mode, a ledger that cannot record what was moved; in that case every move of
the batch is put back before the error propagates.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
from pathlib import Path

from tidymac.common import APP_NAME, is_protected
from tidymac.errors import LedgerError
from tidymac.ledger import UndoLedger, remove_path
from tidymac.models import (
    ActionOutcome,
    CleanAction,
    CleanMode,
    CleanPlan,
    CleanResult,
    Finding,
    RiskTier,
)


class Executor:
    """Safety-first cleanup with dry-run, quarantine and permanent delete."""

    def __init__(self, ledger: UndoLedger, home: Path, logger: logging.Logger | None = None):
        self.ledger = ledger
        self.home = Path(home)
        self.logger = logger or logging.getLogger(APP_NAME)

    def execute(self, plan: CleanPlan) -> CleanResult:
        if plan.mode is CleanMode.DRY_RUN:
            return self._dry_run(plan)
        with self.ledger.exclusive():
            if plan.mode is CleanMode.SOFT:
                return self._soft(plan)
            return self._hard(plan)

    def _precheck(self, finding: Finding, max_risk: RiskTier) -> str | None:
        if is_protected(finding.path, self.home):
            return "protected_path"
        if not max_risk.allows(finding.risk):
            return f"risk_{finding.risk.value}_above_{max_risk.value}"
        if not os.path.lexists(finding.path):
            return "path_vanished"
        return None

    @staticmethod
    def _action(finding: Finding, outcome: ActionOutcome, reason: str | None = None, reclaimed: int = 0) -> CleanAction:
        return CleanAction(
            path=finding.path,
            name=finding.name,
            category=finding.category,
            outcome=outcome,
            estimated_bytes=finding.size_bytes if outcome is ActionOutcome.SUCCEEDED else 0,
            bytes_reclaimed=reclaimed,
            reason=reason,
        )

    # ------------------------------ dry run --------------------------------- #

    def _dry_run(self, plan: CleanPlan) -> CleanResult:
        result = CleanResult(mode=plan.mode)
        for f in plan.findings:
            skip = self._precheck(f, plan.max_risk)
            if skip:
                result.actions.append(self._action(f, ActionOutcome.SKIPPED, skip))
                continue
            result.actions.append(self._action(f, ActionOutcome.SUCCEEDED))
        self.logger.info(
            "cleanup_dry_run items=%d estimated=%d",
            len(result.actions),
            result.estimated_bytes,
        )
        return result

    # ------------------------------ soft mode ------------------------------- #

    def _move_to_staging(self, original_path: str, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(original_path, str(target))

    def _rollback(self, session_id: str, moved: list[tuple[str, Path]]) -> None:
        for original, staged in reversed(moved):
            try:
                Path(original).parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(staged), original)
            except Exception as exc:  # pylint: disable=broad-except
                self.logger.error("rollback_failed session=%s path=%s staged=%s err=%s", session_id, original, staged, exc)
        try:
            self.ledger.discard_session(session_id)
        except LedgerError as exc:
            self.logger.error("rollback_discard_failed session=%s err=%s", session_id, exc)

    def _soft(self, plan: CleanPlan) -> CleanResult:
        result = CleanResult(mode=plan.mode)
        session_id = self.ledger.begin_session(CleanMode.SOFT, plan.profile)
        moved: list[tuple[str, Path]] = []

        for index, f in enumerate(plan.findings, start=1):
            skip = self._precheck(f, plan.max_risk)
            if skip:
                result.actions.append(self._action(f, ActionOutcome.SKIPPED, skip))
                continue

            target = self.ledger.staging_path(session_id, index)
            try:
                self._move_to_staging(f.path, target)
            except Exception as exc:  # pylint: disable=broad-except
                result.actions.append(self._action(f, ActionOutcome.FAILED, str(exc)))
                result.warnings.append(f"{f.path}: {exc}")
                self.logger.error("cleanup_failed session=%s path=%s err=%s", session_id, f.path, exc)
                continue

            try:
                self.ledger.append_record(session_id, f.path, str(target), f.size_bytes, f.category)
            except LedgerError:
                self.logger.error("ledger_write_failed session=%s path=%s rolling_back=%d", session_id, f.path, len(moved) + 1)
                self._rollback(session_id, moved + [(f.path, target)])
                raise

            moved.append((f.path, target))
            result.actions.append(self._action(f, ActionOutcome.SUCCEEDED, reclaimed=f.size_bytes))
            self.logger.info("cleanup_success session=%s mode=soft path=%s risk=%s", session_id, f.path, f.risk.value)

        if not moved:
            self.ledger.discard_session(session_id)
            return result

        try:
            result.session = self.ledger.finalize_session(session_id)
        except LedgerError:
            self._rollback(session_id, moved)
            raise
        return result

    # ------------------------------ hard mode ------------------------------- #

    def _delete_permanently(self, path: str) -> None:
        remove_path(Path(path))

    def _hard(self, plan: CleanPlan) -> CleanResult:
        result = CleanResult(mode=plan.mode)
        audit_id: str | None = None
        try:
            audit_id = self.ledger.begin_session(CleanMode.HARD, plan.profile)
        except LedgerError as exc:
            result.warnings.append(f"audit log unavailable: {exc}")

        removed = 0
        for f in plan.findings:
            skip = self._precheck(f, plan.max_risk)
            if skip:
                result.actions.append(self._action(f, ActionOutcome.SKIPPED, skip))
                continue
            try:
                self._delete_permanently(f.path)
            except Exception as exc:  # pylint: disable=broad-except
                result.actions.append(self._action(f, ActionOutcome.FAILED, str(exc)))
                result.warnings.append(f"{f.path}: {exc}")
                self.logger.error("cleanup_failed mode=hard path=%s err=%s", f.path, exc)
                continue

            removed += 1
            result.actions.append(self._action(f, ActionOutcome.SUCCEEDED, reclaimed=f.size_bytes))
            self.logger.info("cleanup_success audit=%s mode=hard path=%s risk=%s", audit_id, f.path, f.risk.value)
            if audit_id is not None:
                try:
                    self.ledger.append_record(audit_id, f.path, None, f.size_bytes, f.category, irreversible=True)
                except LedgerError as exc:
                    result.warnings.append(f"audit record not written for {f.path}: {exc}")

        if audit_id is not None:
            if removed:
                result.audit_id = audit_id
            else:
                with contextlib.suppress(LedgerError):
                    self.ledger.discard_session(audit_id)
        return result
