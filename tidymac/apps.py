"""Installed application discovery and per-app leftover lookup."""

from __future__ import annotations

import concurrent.futures
import logging
import os
import plistlib
from pathlib import Path
from typing import Iterable

from tidymac.catalog import is_safe_identifier, leftover_root, leftover_rules
from tidymac.common import APP_NAME, expand_home, is_subpath
from tidymac.errors import AppNotFound
from tidymac.models import AppInfo, Finding
from tidymac.scanner import Scanner, measure_path


def read_info_plist(bundle: Path) -> tuple[str | None, str | None]:
    info = bundle / "Contents" / "Info.plist"
    try:
        with open(info, "rb") as fh:
            data = plistlib.load(fh)
    except (OSError, plistlib.InvalidFileException, ValueError):
        return None, None
    if not isinstance(data, dict):
        return None, None
    bundle_id = data.get("CFBundleIdentifier")
    version = data.get("CFBundleShortVersionString") or data.get("CFBundleVersion")
    return (
        str(bundle_id) if bundle_id else None,
        str(version) if version else None,
    )


class AppRegistry:
    """Enumerate ``.app`` bundles and find the data they leave behind."""

    def __init__(
        self,
        app_dirs: Iterable[Path],
        scanner: Scanner,
        workers: int = 4,
        logger: logging.Logger | None = None,
    ):
        self.app_dirs = [Path(d) for d in app_dirs]
        self.scanner = scanner
        self.workers = max(1, workers)
        self.logger = logger or logging.getLogger(APP_NAME)

    def _source_for(self, app_dir: Path) -> str:
        if is_subpath(str(app_dir), str(self.scanner.home)):
            return "user_applications"
        return "applications"

    def _bundles(self) -> list[tuple[Path, str]]:
        bundles: list[tuple[Path, str]] = []
        for app_dir in self.app_dirs:
            try:
                with os.scandir(app_dir) as it:
                    for entry in it:
                        if entry.name.endswith(".app") and entry.is_dir(follow_symlinks=False):
                            bundles.append((Path(entry.path), self._source_for(app_dir)))
            except FileNotFoundError:
                continue
            except OSError as exc:
                self.logger.warning("apps_dir_unreadable path=%s err=%s", app_dir, exc)
        return bundles

    def _describe(self, item: tuple[Path, str]) -> AppInfo:
        bundle, source = item
        bundle_id, version = read_info_plist(bundle)
        size = measure_path(str(bundle), str(bundle)).size_bytes
        return AppInfo(
            name=bundle.stem,
            path=str(bundle),
            bundle_id=bundle_id,
            version=version,
            size_bytes=size,
            source=source,
        )

    def list_apps(self) -> list[AppInfo]:
        bundles = self._bundles()
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as ex:
            apps = list(ex.map(self._describe, bundles))
        apps.sort(key=lambda a: (-a.size_bytes, a.name.lower()))
        return apps

    def match(self, app_name: str, apps: list[AppInfo] | None = None) -> list[AppInfo]:
        needle = app_name.strip().lower()
        if needle.endswith(".app"):
            needle = needle[:-4]
        candidates = apps if apps is not None else self.list_apps()
        return [
            a
            for a in candidates
            if a.name.lower() == needle or (a.bundle_id or "").lower() == needle
        ]

    def _inside_leftover_root(self, finding: Finding) -> bool:
        root = leftover_root(finding.rule_id)
        if root is None:
            return False
        base = expand_home(root, self.scanner.home)
        return is_subpath(finding.path, base) and not is_subpath(base, finding.path)

    def find_leftovers(self, app_name: str, warnings: list[str] | None = None) -> list[Finding]:
        """Leftover data for one app, by display name or bundle id.

        Raises AppNotFound only when the name matches no installed app and no
        leftovers turn up under it either, or when an unmatched name is not a
        single path component. Every finding stays under the directory its
        template names, and bundles themselves are never included.
        """
        apps = self.list_apps()
        matched = self.match(app_name, apps)

        identifiers: list[str] = []
        display = app_name.strip()
        if matched:
            display = matched[0].name
            for app in matched:
                for ident in (app.bundle_id, app.name):
                    if ident and ident not in identifiers:
                        identifiers.append(ident)
        elif is_safe_identifier(display):
            identifiers.append(display)
        else:
            raise AppNotFound(f"'{app_name}' is not an app name or bundle identifier")

        run = self.scanner.scan(leftover_rules(display, identifiers))
        bundle_paths = [a.path for a in apps]
        findings = [
            f
            for f in run
            if self._inside_leftover_root(f)
            and not any(is_subpath(f.path, b) for b in bundle_paths)
            and not f.path.endswith(".app")
        ]
        if warnings is not None:
            warnings.extend(run.warnings)

        if not matched and not findings:
            raise AppNotFound(f"No installed app or leftovers found for '{app_name}'")

        self.logger.info(
            "leftovers_found app=%s installed=%s items=%d bytes=%d",
            display,
            bool(matched),
            len(findings),
            sum(f.size_bytes for f in findings),
        )
        return findings
