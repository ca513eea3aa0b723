"""Closed vocabularies and record types shared by every pipeline stage.

Boundary strings are parsed into these enums exactly once (in the bridge or
the CLI). Nothing past that point compares raw strings.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Any

from tidymac.common import human_bytes, iso_from_epoch
from tidymac.errors import UnknownMode, UnknownProfile, UnknownRiskTier

# ------------------------------ Vocabularies -------------------------------- #


class Category(str, enum.Enum):
    CACHE = "cache"
    LOG = "log"
    LEFTOVER = "leftover"
    DOCKER = "docker"
    PRIVACY = "privacy"

    @property
    def order(self) -> int:
        return list(Category).index(self)


class RiskTier(str, enum.Enum):
    SAFE = "safe"
    CAUTION = "caution"
    RISKY = "risky"

    @property
    def rank(self) -> int:
        return list(RiskTier).index(self)

    def allows(self, other: "RiskTier") -> bool:
        """True when ``other`` is at or below this ceiling."""
        return other.rank <= self.rank

    @classmethod
    def parse(cls, raw: str | None) -> "RiskTier":
        text = (raw or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        raise UnknownRiskTier(f"Unknown risk tier '{raw}'. Expected safe, caution or risky")


class ProfileName(str, enum.Enum):
    QUICK = "quick"
    DEVELOPER = "developer"
    CREATIVE = "creative"
    DEEP = "deep"

    @classmethod
    def parse(cls, raw: str | None) -> "ProfileName":
        for member in cls:
            if member.value == raw:
                return member
        names = ", ".join(m.value for m in cls)
        raise UnknownProfile(f"Unknown profile '{raw}'. Available: {names}")


class CleanMode(str, enum.Enum):
    DRY_RUN = "dry_run"
    SOFT = "soft"
    HARD = "hard"

    @classmethod
    def parse(cls, raw: str | None) -> "CleanMode":
        for member in cls:
            if member.value == raw:
                return member
        raise UnknownMode(f"Unknown clean mode '{raw}'. Expected dry_run, soft or hard")


class ActionOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


class RestoreStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    CONFLICT = "conflict"
    MISSING = "missing"
    IRREVERSIBLE = "irreversible"
    FAILED = "failed"


class SessionState(str, enum.Enum):
    PENDING = "pending"
    OPEN = "open"
    RETIRED = "retired"
    AUDIT = "audit"


class PrivacyCategory(str, enum.Enum):
    BROWSER_HISTORY = "browser-history"
    BROWSER_COOKIES = "browser-cookies"
    WEB_STORAGE = "web-storage"
    SAVED_CREDENTIAL_CACHE = "saved-credential-cache"
    DEVICE_IDENTIFIER_CACHE = "device-identifier-cache"
    APP_STATE = "app-state"
    RECENT_ITEMS = "recent-items"


class Sensitivity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ------------------------------ Data Models --------------------------------- #


@dataclasses.dataclass(frozen=True, slots=True)
class Rule:
    rule_id: str
    name: str
    category: Category
    patterns: tuple[str, ...]
    risk: RiskTier
    reason: str
    recursive: bool = True
    min_age_days: int | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class Profile:
    name: ProfileName
    description: str
    aggression: int
    rule_ids: tuple[str, ...]


@dataclasses.dataclass(slots=True)
class Finding:
    path: str
    rule_id: str
    name: str
    category: Category
    size_bytes: int
    risk: RiskTier
    reason: str = ""
    file_count: int = 0
    modified: float | None = None
    accessed: float | None = None
    categories: list[Category] = dataclasses.field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.categories:
            self.categories = [self.category]

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "rule_id": self.rule_id,
            "name": self.name,
            "category": self.category.value,
            "categories": [c.value for c in self.categories],
            "size_bytes": self.size_bytes,
            "size_human": human_bytes(self.size_bytes),
            "file_count": self.file_count,
            "risk": self.risk.value,
            "reason": self.reason,
            "modified": iso_from_epoch(self.modified),
            "accessed": iso_from_epoch(self.accessed),
        }


@dataclasses.dataclass(slots=True)
class AppInfo:
    name: str
    path: str
    bundle_id: str | None = None
    version: str | None = None
    size_bytes: int = 0
    source: str = "applications"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "bundle_id": self.bundle_id,
            "version": self.version,
            "path": self.path,
            "size_bytes": self.size_bytes,
            "size_human": human_bytes(self.size_bytes),
            "source": self.source,
        }


@dataclasses.dataclass(slots=True)
class CleanPlan:
    findings: list[Finding]
    mode: CleanMode = CleanMode.DRY_RUN
    max_risk: RiskTier = RiskTier.RISKY
    profile: str | None = None

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.findings)


@dataclasses.dataclass(slots=True)
class CleanAction:
    path: str
    name: str
    category: Category
    outcome: ActionOutcome
    estimated_bytes: int = 0
    bytes_reclaimed: int = 0
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "category": self.category.value,
            "outcome": self.outcome.value,
            "estimated_bytes": self.estimated_bytes,
            "bytes_reclaimed": self.bytes_reclaimed,
            "reason": self.reason,
        }


@dataclasses.dataclass(slots=True)
class UndoRecord:
    record_id: int
    session_id: str
    original_path: str
    quarantine_path: str | None
    size_bytes: int
    category: Category
    irreversible: bool = False
    restored_at: str | None = None
    purged_at: str | None = None

    @property
    def actionable(self) -> bool:
        return not self.irreversible and self.restored_at is None and self.purged_at is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "original_path": self.original_path,
            "quarantine_path": self.quarantine_path,
            "size_bytes": self.size_bytes,
            "category": self.category.value,
            "irreversible": self.irreversible,
            "restored_at": self.restored_at,
            "purged_at": self.purged_at,
        }


@dataclasses.dataclass(slots=True)
class UndoSession:
    session_id: str
    created_at: str
    mode: CleanMode
    state: SessionState
    profile: str | None = None
    expires_at: str | None = None
    records: list[UndoRecord] = dataclasses.field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        return sum(r.size_bytes for r in self.records)

    def to_dict(self, include_records: bool = True) -> dict[str, Any]:
        body: dict[str, Any] = {
            "session_id": self.session_id,
            "created_at": self.created_at,
            "mode": self.mode.value,
            "state": self.state.value,
            "profile": self.profile,
            "expires_at": self.expires_at,
            "item_count": len(self.records),
            "total_bytes": self.total_bytes,
            "total_human": human_bytes(self.total_bytes),
        }
        if include_records:
            body["records"] = [r.to_dict() for r in self.records]
        return body


@dataclasses.dataclass(slots=True)
class CleanResult:
    mode: CleanMode
    actions: list[CleanAction] = dataclasses.field(default_factory=list)
    session: UndoSession | None = None
    audit_id: str | None = None
    warnings: list[str] = dataclasses.field(default_factory=list)

    def count(self, outcome: ActionOutcome) -> int:
        return sum(1 for a in self.actions if a.outcome is outcome)

    @property
    def bytes_reclaimed(self) -> int:
        return sum(a.bytes_reclaimed for a in self.actions)

    @property
    def estimated_bytes(self) -> int:
        return sum(a.estimated_bytes for a in self.actions if a.outcome is ActionOutcome.SUCCEEDED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "succeeded": self.count(ActionOutcome.SUCCEEDED),
            "skipped": self.count(ActionOutcome.SKIPPED),
            "failed": self.count(ActionOutcome.FAILED),
            "estimated_bytes": self.estimated_bytes,
            "bytes_reclaimed": self.bytes_reclaimed,
            "bytes_reclaimed_human": human_bytes(self.bytes_reclaimed),
            "session_id": self.session.session_id if self.session else None,
            "audit_id": self.audit_id,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclasses.dataclass(slots=True)
class RestoreOutcome:
    original_path: str
    status: RestoreStatus
    size_bytes: int = 0
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_path": self.original_path,
            "status": self.status.value,
            "size_bytes": self.size_bytes,
            "detail": self.detail,
        }


@dataclasses.dataclass(slots=True)
class RestoreResult:
    session_id: str
    outcomes: list[RestoreOutcome] = dataclasses.field(default_factory=list)
    retired: bool = False

    @property
    def restored_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is RestoreStatus.SUCCEEDED)

    @property
    def restored_bytes(self) -> int:
        return sum(o.size_bytes for o in self.outcomes if o.status is RestoreStatus.SUCCEEDED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "restored_count": self.restored_count,
            "restored_bytes": self.restored_bytes,
            "retired": self.retired,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclasses.dataclass(slots=True)
class AuditFinding:
    path: str
    name: str
    privacy_category: PrivacyCategory
    sensitivity: Sensitivity
    description: str
    size_bytes: int = 0
    risk: RiskTier = RiskTier.CAUTION

    def to_finding(self) -> Finding:
        return Finding(
            path=self.path,
            rule_id=f"privacy:{self.privacy_category.value}",
            name=self.name,
            category=Category.PRIVACY,
            size_bytes=self.size_bytes,
            risk=self.risk,
            reason=self.description,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "privacy_category": self.privacy_category.value,
            "sensitivity": self.sensitivity.value,
            "description": self.description,
            "size_bytes": self.size_bytes,
            "size_human": human_bytes(self.size_bytes),
        }


@dataclasses.dataclass(slots=True)
class DiskUsageNode:
    path: str
    name: str
    size_bytes: int = 0
    children: list["DiskUsageNode"] = dataclasses.field(default_factory=list)
    is_other: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "size_bytes": self.size_bytes,
            "size_human": human_bytes(self.size_bytes),
            "is_other": self.is_other,
            "children": [c.to_dict() for c in self.children],
        }
