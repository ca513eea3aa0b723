"""Read-only privacy audit.

Browser histories, cookie jars, web storage, credential caches, identifier
caches and app state are located with a fixed rule set and measured with the
scanner's traversal. Nothing here deletes; selected results can be turned into
ordinary findings and passed through the planner.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from typing import Iterator

from tidymac.common import APP_NAME
from tidymac.models import AuditFinding, Category, Finding, PrivacyCategory, RiskTier, Rule, Sensitivity
from tidymac.scanner import Scanner, ScanRun

KNOWN_TRACKERS = (
    "doubleclick.net",
    "google-analytics.com",
    "googleadservices.com",
    "googlesyndication.com",
    "facebook.net",
    "amazon-adsystem.com",
    "adnxs.com",
    "criteo.com",
    "outbrain.com",
    "taboola.com",
    "hotjar.com",
    "mixpanel.com",
    "amplitude.com",
    "segment.io",
    "scorecardresearch.com",
    "appsflyer.com",
    "branch.io",
    "adjust.com",
    "braze.com",
)

CHROMIUM_BROWSERS = (
    ("Google Chrome", "Google/Chrome"),
    ("Chrome Canary", "Google/Chrome Canary"),
    ("Chromium", "Chromium"),
    ("Brave", "BraveSoftware/Brave-Browser"),
    ("Microsoft Edge", "Microsoft Edge"),
    ("Arc", "Arc/User Data"),
    ("Vivaldi", "Vivaldi"),
    ("Opera", "com.operasoftware.Opera"),
)

# (file inside a Chromium profile dir, label, category, sensitivity)
CHROMIUM_ARTIFACTS = (
    ("History", "History", PrivacyCategory.BROWSER_HISTORY, Sensitivity.HIGH),
    ("Cookies", "Cookies", PrivacyCategory.BROWSER_COOKIES, Sensitivity.HIGH),
    ("Local Storage", "Local Storage", PrivacyCategory.WEB_STORAGE, Sensitivity.MEDIUM),
    ("Login Data", "Saved Logins", PrivacyCategory.SAVED_CREDENTIAL_CACHE, Sensitivity.HIGH),
    ("Web Data", "Autofill Data", PrivacyCategory.SAVED_CREDENTIAL_CACHE, Sensitivity.HIGH),
)


@dataclasses.dataclass(frozen=True, slots=True)
class PrivacyRule:
    rule_id: str
    name: str
    patterns: tuple[str, ...]
    privacy_category: PrivacyCategory
    sensitivity: Sensitivity
    description: str

    def as_rule(self) -> Rule:
        risk = RiskTier.RISKY if self.sensitivity is Sensitivity.HIGH else RiskTier.CAUTION
        return Rule(
            rule_id=self.rule_id,
            name=self.name,
            category=Category.PRIVACY,
            patterns=self.patterns,
            risk=risk,
            reason=self.description,
        )


def _chromium_rules() -> list[PrivacyRule]:
    rules: list[PrivacyRule] = []
    for browser, rel in CHROMIUM_BROWSERS:
        base = f"~/Library/Application Support/{rel}"
        slug = rel.lower().replace("/", "_").replace(" ", "_")
        for filename, label, category, sensitivity in CHROMIUM_ARTIFACTS:
            rules.append(
                PrivacyRule(
                    rule_id=f"privacy:{slug}:{filename.lower().replace(' ', '_')}",
                    name=f"{browser} {label}",
                    patterns=(f"{base}/Default/{filename}", f"{base}/Profile */{filename}"),
                    privacy_category=category,
                    sensitivity=sensitivity,
                    description=f"{label} stored by {browser}",
                )
            )
    return rules


PRIVACY_RULES: tuple[PrivacyRule, ...] = (
    PrivacyRule(
        rule_id="privacy:safari:history",
        name="Safari History",
        patterns=("~/Library/Safari/History.db", "~/Library/Safari/History.db-wal"),
        privacy_category=PrivacyCategory.BROWSER_HISTORY,
        sensitivity=Sensitivity.HIGH,
        description="Every page visited in Safari",
    ),
    PrivacyRule(
        rule_id="privacy:safari:cookies",
        name="Safari Cookies",
        patterns=(
            "~/Library/Cookies/Cookies.binarycookies",
            "~/Library/Containers/com.apple.Safari/Data/Library/Cookies/Cookies.binarycookies",
        ),
        privacy_category=PrivacyCategory.BROWSER_COOKIES,
        sensitivity=Sensitivity.HIGH,
        description="Session and tracking cookies set while browsing in Safari",
    ),
    PrivacyRule(
        rule_id="privacy:safari:local_storage",
        name="Safari Local Storage",
        patterns=("~/Library/Safari/LocalStorage", "~/Library/Safari/Databases"),
        privacy_category=PrivacyCategory.WEB_STORAGE,
        sensitivity=Sensitivity.MEDIUM,
        description="Data websites saved locally through Safari",
    ),
    *_chromium_rules(),
    PrivacyRule(
        rule_id="privacy:firefox:history",
        name="Firefox History",
        patterns=("~/Library/Application Support/Firefox/Profiles/*/places.sqlite",),
        privacy_category=PrivacyCategory.BROWSER_HISTORY,
        sensitivity=Sensitivity.HIGH,
        description="History and bookmarks database of a Firefox profile",
    ),
    PrivacyRule(
        rule_id="privacy:firefox:cookies",
        name="Firefox Cookies",
        patterns=("~/Library/Application Support/Firefox/Profiles/*/cookies.sqlite",),
        privacy_category=PrivacyCategory.BROWSER_COOKIES,
        sensitivity=Sensitivity.HIGH,
        description="Cookie jar of a Firefox profile",
    ),
    PrivacyRule(
        rule_id="privacy:firefox:web_storage",
        name="Firefox Web Storage",
        patterns=(
            "~/Library/Application Support/Firefox/Profiles/*/webappsstore.sqlite",
            "~/Library/Application Support/Firefox/Profiles/*/storage",
        ),
        privacy_category=PrivacyCategory.WEB_STORAGE,
        sensitivity=Sensitivity.MEDIUM,
        description="Data websites saved locally through Firefox",
    ),
    PrivacyRule(
        rule_id="privacy:firefox:logins",
        name="Firefox Saved Logins",
        patterns=(
            "~/Library/Application Support/Firefox/Profiles/*/logins.json",
            "~/Library/Application Support/Firefox/Profiles/*/key4.db",
        ),
        privacy_category=PrivacyCategory.SAVED_CREDENTIAL_CACHE,
        sensitivity=Sensitivity.HIGH,
        description="Encrypted saved passwords and their key store",
    ),
    PrivacyRule(
        rule_id="privacy:system:cookies",
        name="App Cookies",
        patterns=("~/Library/Cookies/*.binarycookies",),
        privacy_category=PrivacyCategory.BROWSER_COOKIES,
        sensitivity=Sensitivity.MEDIUM,
        description="Cookie jars kept by individual applications",
    ),
    PrivacyRule(
        rule_id="privacy:system:http_storages",
        name="HTTP Storages",
        patterns=("~/Library/HTTPStorages/*",),
        privacy_category=PrivacyCategory.WEB_STORAGE,
        sensitivity=Sensitivity.MEDIUM,
        description="Per-app HTTP cookie and cache storage",
    ),
    PrivacyRule(
        rule_id="privacy:system:webkit",
        name="WebKit Data",
        patterns=("~/Library/WebKit/*",),
        privacy_category=PrivacyCategory.WEB_STORAGE,
        sensitivity=Sensitivity.LOW,
        description="Embedded web view storage kept by apps",
    ),
    PrivacyRule(
        rule_id="privacy:system:saved_state",
        name="Saved Application State",
        patterns=("~/Library/Saved Application State/*.savedState",),
        privacy_category=PrivacyCategory.APP_STATE,
        sensitivity=Sensitivity.LOW,
        description="Window contents and positions restored when apps relaunch",
    ),
    PrivacyRule(
        rule_id="privacy:system:recent_items",
        name="Recent Items",
        patterns=("~/Library/Application Support/com.apple.sharedfilelist/*",),
        privacy_category=PrivacyCategory.RECENT_ITEMS,
        sensitivity=Sensitivity.MEDIUM,
        description="Lists of recently opened documents, apps and servers",
    ),
    PrivacyRule(
        rule_id="privacy:system:ad_identifiers",
        name="Advertising Identifier Cache",
        patterns=(
            "~/Library/Application Support/com.apple.ap.adprivacyd",
            "~/Library/Caches/com.apple.ap.adprivacyd",
            "~/Library/Preferences/com.apple.AdLib.plist",
        ),
        privacy_category=PrivacyCategory.DEVICE_IDENTIFIER_CACHE,
        sensitivity=Sensitivity.MEDIUM,
        description="Advertising identifiers and ad personalization state",
    ),
    PrivacyRule(
        rule_id="privacy:system:identity_cache",
        name="Account Identity Cache",
        patterns=("~/Library/Caches/com.apple.akd", "~/Library/Caches/com.apple.iCloudHelper"),
        privacy_category=PrivacyCategory.SAVED_CREDENTIAL_CACHE,
        sensitivity=Sensitivity.MEDIUM,
        description="Cached account authentication state",
    ),
)


def is_known_tracker(name: str) -> bool:
    lower = name.lower()
    return any(t in lower for t in KNOWN_TRACKERS)


class AuditRun:
    """Iterator of AuditFindings backed by a single scan run."""

    def __init__(self, run: ScanRun, rules: dict[str, PrivacyRule]):
        self._run = run
        self._rules = rules

    @property
    def warnings(self) -> list[str]:
        return self._run.warnings

    @property
    def cancelled(self) -> bool:
        return self._run.cancelled

    def cancel(self) -> None:
        self._run.cancel()

    def __iter__(self) -> Iterator[AuditFinding]:
        for finding in self._run:
            yield self._convert(finding)

    def _convert(self, finding: Finding) -> AuditFinding:
        rule = self._rules[finding.rule_id]
        sensitivity = rule.sensitivity
        description = rule.description
        if is_known_tracker(os.path.basename(finding.path)):
            sensitivity = Sensitivity.HIGH
            description = f"{description} (known tracking domain)"
        return AuditFinding(
            path=finding.path,
            name=finding.name,
            privacy_category=rule.privacy_category,
            sensitivity=sensitivity,
            description=description,
            size_bytes=finding.size_bytes,
            risk=finding.risk,
        )


class PrivacyAuditor:
    """Audit every privacy rule, always in full."""

    def __init__(self, scanner: Scanner, logger: logging.Logger | None = None):
        self.scanner = scanner
        self.logger = logger or logging.getLogger(APP_NAME)
        self.rules = {r.rule_id: r for r in PRIVACY_RULES}

    def audit(self) -> AuditRun:
        run = self.scanner.scan([r.as_rule() for r in PRIVACY_RULES])
        return AuditRun(run, self.rules)

    @staticmethod
    def as_findings(audit_findings: list[AuditFinding]) -> list[Finding]:
        return [a.to_finding() for a in audit_findings]
