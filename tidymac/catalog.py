"""Static rule catalog and the built-in cleanup profiles.

Rules are plain immutable records. Their patterns are resolved against the
live filesystem by the scanner; nothing here touches the disk.
"""

from __future__ import annotations

import glob
import os
from typing import Any, Iterable

from tidymac.errors import UnknownProfile
from tidymac.models import Category, Profile, ProfileName, RiskTier, Rule

# ------------------------------- Rule Catalog -------------------------------- #

RULES: tuple[Rule, ...] = (
    # -- system junk --
    Rule(
        rule_id="quicklook_thumbnails",
        name="QuickLook Thumbnails",
        category=Category.CACHE,
        patterns=("~/Library/Caches/com.apple.QuickLook.thumbnailcache",),
        risk=RiskTier.SAFE,
        reason="Thumbnail preview caches, regenerated on demand",
    ),
    Rule(
        rule_id="user_caches",
        name="User Cache Files",
        category=Category.CACHE,
        patterns=("~/Library/Caches/*",),
        risk=RiskTier.SAFE,
        reason="Application caches that will be regenerated automatically",
    ),
    Rule(
        rule_id="crash_reports",
        name="Crash Reports",
        category=Category.LOG,
        patterns=("~/Library/Logs/DiagnosticReports",),
        risk=RiskTier.SAFE,
        reason="Application crash reports, safe to remove unless debugging",
    ),
    Rule(
        rule_id="user_logs",
        name="User Log Files",
        category=Category.LOG,
        patterns=("~/Library/Logs/*",),
        risk=RiskTier.SAFE,
        reason="Application logs that can be safely removed",
    ),
    Rule(
        rule_id="system_logs",
        name="System Log Files",
        category=Category.LOG,
        patterns=("/private/var/log/*.log", "/private/var/log/*.gz"),
        risk=RiskTier.CAUTION,
        reason="System logs, old entries are safe to remove",
        min_age_days=7,
    ),
    Rule(
        rule_id="temp_files",
        name="Temporary Files",
        category=Category.CACHE,
        patterns=("/private/tmp/*", "/private/var/tmp/*"),
        risk=RiskTier.SAFE,
        reason="Temporary files created by the system and apps",
        min_age_days=1,
    ),
    Rule(
        rule_id="user_trash",
        name="User Trash",
        category=Category.CACHE,
        patterns=("~/.Trash/*",),
        risk=RiskTier.SAFE,
        reason="Files in your trash bin",
    ),
    Rule(
        rule_id="external_trash",
        name="External Drive Trash",
        category=Category.CACHE,
        patterns=("/Volumes/*/.Trashes/*",),
        risk=RiskTier.SAFE,
        reason="Trash from external drives",
    ),
    Rule(
        rule_id="downloaded_dmgs",
        name="Downloaded DMG Files",
        category=Category.CACHE,
        patterns=("~/Downloads/*.dmg",),
        risk=RiskTier.CAUTION,
        reason="Installer disk images, usually safe to remove after installation",
        recursive=False,
        min_age_days=7,
    ),
    Rule(
        rule_id="mail_downloads",
        name="Mail Downloads",
        category=Category.CACHE,
        patterns=(
            "~/Library/Mail Downloads",
            "~/Library/Containers/com.apple.mail/Data/Library/Mail Downloads",
        ),
        risk=RiskTier.SAFE,
        reason="Cached mail attachments, re-downloaded from the mail server",
    ),
    # -- creative tools --
    Rule(
        rule_id="adobe_media_cache",
        name="Adobe Media Cache",
        category=Category.CACHE,
        patterns=(
            "~/Library/Application Support/Adobe/Common/Media Cache Files",
            "~/Library/Application Support/Adobe/Common/Media Cache",
        ),
        risk=RiskTier.SAFE,
        reason="Conformed audio and preview files, rebuilt when projects reopen",
    ),
    Rule(
        rule_id="final_cut_render",
        name="Final Cut Render Files",
        category=Category.CACHE,
        patterns=("~/Movies/*.fcpbundle/*/Render Files",),
        risk=RiskTier.CAUTION,
        reason="Rendered timeline segments, regenerated on next render",
    ),
    # -- developer tools --
    Rule(
        rule_id="xcode_derived_data",
        name="Xcode DerivedData",
        category=Category.CACHE,
        patterns=("~/Library/Developer/Xcode/DerivedData",),
        risk=RiskTier.SAFE,
        reason="Build artifacts that Xcode regenerates on next build",
    ),
    Rule(
        rule_id="xcode_archives",
        name="Xcode Archives",
        category=Category.CACHE,
        patterns=("~/Library/Developer/Xcode/Archives",),
        risk=RiskTier.CAUTION,
        reason="App Store submission archives, keep if you need to debug shipped versions",
        min_age_days=90,
    ),
    Rule(
        rule_id="ios_simulators",
        name="iOS Simulators",
        category=Category.CACHE,
        patterns=("~/Library/Developer/CoreSimulator/Devices",),
        risk=RiskTier.CAUTION,
        reason="iOS simulator data, can be re-downloaded",
    ),
    Rule(
        rule_id="docker_data",
        name="Docker Data",
        category=Category.DOCKER,
        patterns=("~/Library/Containers/com.docker.docker/Data", "~/.docker"),
        risk=RiskTier.RISKY,
        reason="Docker images and volumes, use 'docker system prune' for granular control",
    ),
    Rule(
        rule_id="homebrew_cache",
        name="Homebrew Cache",
        category=Category.CACHE,
        patterns=("~/Library/Caches/Homebrew",),
        risk=RiskTier.SAFE,
        reason="Downloaded package archives, re-downloaded on demand",
    ),
    Rule(
        rule_id="pip_cache",
        name="pip Cache",
        category=Category.CACHE,
        patterns=("~/Library/Caches/pip",),
        risk=RiskTier.SAFE,
        reason="Python package download cache, re-downloaded on demand",
    ),
    Rule(
        rule_id="npm_cache",
        name="npm Cache",
        category=Category.CACHE,
        patterns=("~/.npm/_cacache",),
        risk=RiskTier.SAFE,
        reason="npm package cache, re-downloaded on demand",
    ),
    Rule(
        rule_id="yarn_cache",
        name="Yarn Cache",
        category=Category.CACHE,
        patterns=("~/Library/Caches/Yarn",),
        risk=RiskTier.SAFE,
        reason="Yarn package cache, re-downloaded on demand",
    ),
    Rule(
        rule_id="cocoapods_cache",
        name="CocoaPods Cache",
        category=Category.CACHE,
        patterns=("~/Library/Caches/CocoaPods",),
        risk=RiskTier.SAFE,
        reason="CocoaPods spec and download cache",
    ),
    Rule(
        rule_id="cargo_cache",
        name="Cargo Registry Cache",
        category=Category.CACHE,
        patterns=("~/.cargo/registry/cache", "~/.cargo/registry/src"),
        risk=RiskTier.SAFE,
        reason="Rust crate download cache, re-downloaded on demand",
    ),
    Rule(
        rule_id="gradle_cache",
        name="Gradle Cache",
        category=Category.CACHE,
        patterns=("~/.gradle/caches",),
        risk=RiskTier.SAFE,
        reason="Gradle build cache and dependency downloads",
    ),
    Rule(
        rule_id="maven_repository",
        name="Maven Local Repository",
        category=Category.CACHE,
        patterns=("~/.m2/repository",),
        risk=RiskTier.CAUTION,
        reason="Maven dependency cache, may include locally installed artifacts",
    ),
    Rule(
        rule_id="conda_cache",
        name="Conda Package Cache",
        category=Category.CACHE,
        patterns=("~/.conda/pkgs",),
        risk=RiskTier.SAFE,
        reason="Conda downloaded packages, re-downloaded on demand",
    ),
)

RULES_BY_ID: dict[str, Rule] = {r.rule_id: r for r in RULES}

_DEV_RULE_IDS = (
    "xcode_derived_data",
    "ios_simulators",
    "homebrew_cache",
    "pip_cache",
    "yarn_cache",
    "cocoapods_cache",
    "npm_cache",
    "cargo_cache",
    "gradle_cache",
    "conda_cache",
    "docker_data",
)

_BASE_RULE_IDS = (
    "quicklook_thumbnails",
    "user_caches",
    "user_logs",
    "system_logs",
    "temp_files",
    "user_trash",
    "external_trash",
)

# Specific rules precede the generic ones whose globs also match them, so
# deduplication keeps the specific display name.
PROFILES: dict[ProfileName, Profile] = {
    ProfileName.QUICK: Profile(
        name=ProfileName.QUICK,
        description="Fast daily cleanup: caches, temp files, trash",
        aggression=1,
        rule_ids=_BASE_RULE_IDS,
    ),
    ProfileName.DEVELOPER: Profile(
        name=ProfileName.DEVELOPER,
        description="Full developer cache cleanup: Xcode, Docker, npm, pip, and more",
        aggression=2,
        rule_ids=_DEV_RULE_IDS + ("crash_reports",) + _BASE_RULE_IDS + ("downloaded_dmgs",),
    ),
    ProfileName.CREATIVE: Profile(
        name=ProfileName.CREATIVE,
        description="Clean up after creative work: render caches, previews, scratch files",
        aggression=2,
        rule_ids=(
            "adobe_media_cache",
            "final_cut_render",
            "crash_reports",
        )
        + _BASE_RULE_IDS
        + ("mail_downloads", "downloaded_dmgs"),
    ),
    ProfileName.DEEP: Profile(
        name=ProfileName.DEEP,
        description="Thorough cleanup: everything including archives and app leftovers",
        aggression=3,
        rule_ids=_DEV_RULE_IDS
        + (
            "xcode_archives",
            "maven_repository",
            "adobe_media_cache",
            "final_cut_render",
            "crash_reports",
        )
        + _BASE_RULE_IDS
        + ("mail_downloads", "downloaded_dmgs"),
    ),
}


class ProfileRegistry:
    """Look up the built-in profiles and the rules they activate."""

    def __init__(self, profiles: dict[ProfileName, Profile] | None = None, rules: Iterable[Rule] | None = None):
        self.profiles = dict(profiles or PROFILES)
        self.rules = {r.rule_id: r for r in (rules if rules is not None else RULES)}

    def resolve(self, name: ProfileName | str) -> tuple[Rule, ...]:
        key = name if isinstance(name, ProfileName) else ProfileName.parse(name)
        profile = self.profiles.get(key)
        if profile is None:
            raise UnknownProfile(f"Profile '{key.value}' is not registered")
        return tuple(self.rules[rid] for rid in profile.rule_ids)

    def get(self, name: ProfileName) -> Profile:
        try:
            return self.profiles[name]
        except KeyError as exc:
            raise UnknownProfile(f"Profile '{name.value}' is not registered") from exc

    def list(self) -> list[dict[str, Any]]:
        return [
            {
                "name": p.name.value,
                "description": p.description,
                "aggression": p.aggression,
                "rule_count": len(p.rule_ids),
            }
            for p in self.profiles.values()
        ]


# --------------------------- App Leftover Rules ------------------------------ #

# (rule_id, display suffix, pattern template, risk). ``{id}`` receives a
# glob-escaped identifier: the bundle id or the display name.
LEFTOVER_TEMPLATES: tuple[tuple[str, str, str, RiskTier], ...] = (
    ("app_support", "Application Support", "~/Library/Application Support/{id}", RiskTier.CAUTION),
    ("caches", "Cache", "~/Library/Caches/{id}", RiskTier.SAFE),
    ("caches_prefixed", "Cache", "~/Library/Caches/{id}.*", RiskTier.SAFE),
    ("preferences", "Preferences", "~/Library/Preferences/{id}.plist", RiskTier.CAUTION),
    ("byhost_preferences", "Preferences", "~/Library/Preferences/ByHost/{id}.*", RiskTier.CAUTION),
    ("saved_state", "Saved State", "~/Library/Saved Application State/{id}.savedState", RiskTier.SAFE),
    ("container", "Container", "~/Library/Containers/{id}", RiskTier.RISKY),
    ("group_container", "Group Container", "~/Library/Group Containers/*{id}*", RiskTier.RISKY),
    ("cookies", "Cookies", "~/Library/Cookies/{id}.binarycookies", RiskTier.CAUTION),
    ("http_storage", "HTTP Storage", "~/Library/HTTPStorages/{id}", RiskTier.SAFE),
    ("webkit", "WebKit Data", "~/Library/WebKit/{id}", RiskTier.SAFE),
    ("logs", "Logs", "~/Library/Logs/{id}", RiskTier.SAFE),
    ("launch_agent", "Launch Agent", "~/Library/LaunchAgents/{id}*.plist", RiskTier.CAUTION),
    ("crash_reports", "Crash Reports", "~/Library/Logs/DiagnosticReports/{id}*", RiskTier.SAFE),
)


LEFTOVER_ROOTS: dict[str, str] = {
    key: os.path.dirname(template.split("{id}", 1)[0]) for key, _, template, _ in LEFTOVER_TEMPLATES
}


def is_safe_identifier(ident: str | None) -> bool:
    """True when ``ident`` names a single entry inside a leftover directory."""
    if not ident or ident in {".", ".."}:
        return False
    return "/" not in ident and os.sep not in ident and "\0" not in ident


def leftover_root(rule_id: str) -> str | None:
    """Directory a leftover rule's matches must stay under, ``~``-relative."""
    prefix, _, key = rule_id.partition(":")
    if prefix != "leftover":
        return None
    return LEFTOVER_ROOTS.get(key)


def leftover_rules(app_name: str, identifiers: Iterable[str]) -> tuple[Rule, ...]:
    """Expand the leftover templates for every identifier form of one app.

    Identifiers that could step outside a leftover directory are dropped.
    """
    rules: list[Rule] = []
    seen: set[str] = set()
    for ident in identifiers:
        if not is_safe_identifier(ident):
            continue
        escaped = glob.escape(ident)
        for key, label, template, risk in LEFTOVER_TEMPLATES:
            pattern = template.format(id=escaped)
            if pattern in seen:
                continue
            seen.add(pattern)
            rules.append(
                Rule(
                    rule_id=f"leftover:{key}",
                    name=f"{app_name} {label}",
                    category=Category.LEFTOVER,
                    patterns=(pattern,),
                    risk=risk,
                    reason=f"{label} left behind by {app_name}",
                )
            )
    return tuple(rules)
