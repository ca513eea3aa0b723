"""Orchestrator wiring the pipeline components to one configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from tidymac.apps import AppRegistry
from tidymac.catalog import ProfileRegistry
from tidymac.common import setup_logger
from tidymac.config import EngineConfig
from tidymac.disk_usage import DiskUsageAnalyzer, storage_overview
from tidymac.docker import DockerInspector
from tidymac.executor import Executor
from tidymac.ledger import UndoLedger
from tidymac.models import (
    AppInfo,
    AuditFinding,
    CleanMode,
    CleanResult,
    DiskUsageNode,
    Finding,
    ProfileName,
    RestoreResult,
    RiskTier,
    UndoSession,
)
from tidymac.planner import plan
from tidymac.privacy import PrivacyAuditor
from tidymac.scanner import Scanner


class Engine:
    """Owns the ledger handle and every component built on the config."""

    def __init__(self, config: EngineConfig, logger: logging.Logger | None = None):
        self.config = config
        self.logger = logger or setup_logger(config.log_file)
        self.profiles = ProfileRegistry()
        self.scanner = Scanner(
            home=config.home,
            workers=config.scan_workers,
            exclude_paths=config.exclude_paths,
            include_system_paths=config.include_system_paths,
            logger=self.logger,
        )
        self.apps = AppRegistry(config.app_dirs, self.scanner, workers=config.scan_workers, logger=self.logger)
        self.privacy = PrivacyAuditor(self.scanner, logger=self.logger)
        self.usage = DiskUsageAnalyzer(
            max_depth=config.usage_max_depth,
            max_children=config.usage_max_children,
            logger=self.logger,
        )
        self.ledger = UndoLedger(config.data_dir, retention_days=config.retention_days, logger=self.logger)
        self.executor = Executor(self.ledger, config.home, logger=self.logger)
        self.docker = DockerInspector()

    def close(self) -> None:
        self.ledger.close()

    def scan(self, profile: ProfileName) -> tuple[list[Finding], list[str]]:
        run = self.scanner.scan(self.profiles.resolve(profile))
        findings = list(run)
        return findings, run.warnings

    def clean(
        self,
        profile: ProfileName,
        mode: CleanMode,
        selection: set[str] | None = None,
        max_risk: RiskTier | None = None,
    ) -> CleanResult:
        findings, warnings = self.scan(profile)
        clean_plan = plan(
            findings,
            selection,
            mode=mode,
            max_risk=max_risk or self.config.default_max_risk,
            profile=profile.value,
        )
        self.logger.info(
            "clean_requested profile=%s mode=%s planned=%d bytes=%d",
            profile.value,
            mode.value,
            len(clean_plan.findings),
            clean_plan.total_bytes,
        )
        result = self.executor.execute(clean_plan)
        result.warnings[:0] = warnings
        return result

    def apps_list(self) -> list[AppInfo]:
        return self.apps.list_apps()

    def app_leftovers(self, app_name: str) -> tuple[list[Finding], list[str]]:
        warnings: list[str] = []
        findings = self.apps.find_leftovers(app_name, warnings)
        return findings, warnings

    def app_clean_leftovers(
        self,
        app_name: str,
        mode: CleanMode = CleanMode.SOFT,
        max_risk: RiskTier | None = None,
    ) -> CleanResult:
        findings, warnings = self.app_leftovers(app_name)
        clean_plan = plan(
            findings,
            mode=mode,
            max_risk=max_risk or self.config.default_max_risk,
            profile=f"app:{app_name}",
        )
        result = self.executor.execute(clean_plan)
        result.warnings[:0] = warnings
        return result

    def privacy_scan(self) -> tuple[list[AuditFinding], list[str]]:
        run = self.privacy.audit()
        findings = list(run)
        return findings, run.warnings

    def privacy_clean(
        self,
        mode: CleanMode,
        selection: set[str] | None = None,
        max_risk: RiskTier | None = None,
    ) -> CleanResult:
        audit, warnings = self.privacy_scan()
        clean_plan = plan(
            PrivacyAuditor.as_findings(audit),
            selection,
            mode=mode,
            max_risk=max_risk or self.config.default_max_risk,
            profile="privacy",
        )
        self.logger.info(
            "privacy_clean_requested mode=%s planned=%d bytes=%d",
            mode.value,
            len(clean_plan.findings),
            clean_plan.total_bytes,
        )
        result = self.executor.execute(clean_plan)
        result.warnings[:0] = warnings
        return result

    def disk_usage(self, root: Path | None = None) -> tuple[DiskUsageNode, dict[str, Any], list[str]]:
        tree = self.usage.analyze(root or self.config.home)
        overview = storage_overview(self.config.home, self.config.include_system_paths)
        return tree, overview, list(self.usage.warnings)

    def docker_usage(self) -> dict[str, Any]:
        return self.docker.usage()

    def undo_list(self, include_retired: bool = False) -> list[UndoSession]:
        return self.ledger.list(include_retired=include_retired)

    def undo_session(self, session_id: str) -> RestoreResult:
        return self.ledger.restore(session_id)

    def purge_expired(self) -> dict[str, Any]:
        return self.ledger.purge_expired()

    def profiles_list(self) -> list[dict[str, Any]]:
        return self.profiles.list()
