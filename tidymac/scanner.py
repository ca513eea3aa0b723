"""Rule-driven scanner.

Resolves rule patterns against the live filesystem, measures each existing
target on a bounded worker pool, then deduplicates and orders the merged
findings. Targets are measured independently so one slow subtree only ties up
its own worker.
"""

from __future__ import annotations

import concurrent.futures
import dataclasses
import glob
import logging
import os
import re
import stat
import threading
import time
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from tidymac.common import APP_NAME, expand_home, is_subpath
from tidymac.models import Finding, Rule

GLOB_CHARS = re.compile(r"[*?\[]")


# ------------------------------ Measurement --------------------------------- #


@dataclasses.dataclass(slots=True)
class Measurement:
    size_bytes: int = 0
    file_count: int = 0
    modified: float | None = None
    accessed: float | None = None
    warnings: list[str] = dataclasses.field(default_factory=list)
    cancelled: bool = False

    def add(self, st: os.stat_result) -> None:
        self.size_bytes += physical_size(st)
        self.file_count += 1
        self.modified = st.st_mtime if self.modified is None else max(self.modified, st.st_mtime)
        self.accessed = st.st_atime if self.accessed is None else max(self.accessed, st.st_atime)


def physical_size(st: os.stat_result) -> int:
    blocks = getattr(st, "st_blocks", None)
    if blocks is None:
        return int(st.st_size)
    return int(blocks) * 512


def declared_root(pattern: str) -> str:
    """Longest leading part of ``pattern`` that contains no glob characters."""
    parts = Path(pattern).parts
    fixed: list[str] = []
    for part in parts:
        if GLOB_CHARS.search(part):
            break
        fixed.append(part)
    if not fixed:
        return os.sep
    return str(Path(*fixed))


def resolve_pattern(pattern: str, home: Path) -> tuple[list[str], str]:
    """Expand ``~`` and globs. Returns existing matches and the declared root."""
    expanded = expand_home(pattern, home)
    root = declared_root(expanded)
    if GLOB_CHARS.search(expanded):
        matches = sorted(glob.glob(expanded))
    else:
        matches = [expanded] if os.path.lexists(expanded) else []
    return matches, root


def measure_path(
    path: str,
    root: str,
    recursive: bool = True,
    cancel: threading.Event | None = None,
) -> Measurement:
    """Physical size of ``path`` and everything below it.

    Symlinks inside the tree are counted as links and never followed. A
    symlinked target is followed only when its real path stays under ``root``.
    """
    m = Measurement()
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        m.warnings.append(f"{path}: vanished during scan")
        return m
    except OSError as exc:
        m.warnings.append(f"{path}: {exc.strerror or exc}")
        return m

    start = path
    if stat.S_ISLNK(st.st_mode):
        real = os.path.realpath(path)
        if not is_subpath(real, root) or not os.path.exists(real):
            m.add(st)
            return m
        start = real
        try:
            st = os.stat(real)
        except OSError as exc:
            m.warnings.append(f"{path}: {exc.strerror or exc}")
            return m

    if not stat.S_ISDIR(st.st_mode):
        m.add(st)
        return m

    stack = [start]
    while stack:
        if cancel is not None and cancel.is_set():
            m.cancelled = True
            return m
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                for entry in it:
                    try:
                        est = entry.stat(follow_symlinks=False)
                    except FileNotFoundError:
                        continue
                    except OSError as exc:
                        m.warnings.append(f"{entry.path}: {exc.strerror or exc}")
                        continue
                    if stat.S_ISDIR(est.st_mode):
                        if recursive:
                            stack.append(entry.path)
                        continue
                    m.add(est)
        except FileNotFoundError:
            if current == start:
                m.warnings.append(f"{path}: vanished during scan")
        except OSError as exc:
            m.warnings.append(f"{current}: {exc.strerror or exc}")
    return m


# --------------------------------- Scanner ---------------------------------- #


@dataclasses.dataclass(slots=True)
class ScanTarget:
    rule: Rule
    path: str
    root: str
    priority: int


class ScanRun:
    """One-shot iterator over the findings of a single scan.

    Work starts on the first ``next()``. Findings are yielded only after every
    target has been measured, because deduplication needs the full set.
    ``warnings`` is complete once iteration has finished.
    """

    def __init__(self, scanner: "Scanner", rules: Sequence[Rule]):
        self._scanner = scanner
        self._rules = list(rules)
        self._cancel = threading.Event()
        self._iter: Iterator[Finding] | None = None
        self.warnings: list[str] = []
        self.cancelled = False

    def cancel(self) -> None:
        self._cancel.set()

    def __iter__(self) -> "ScanRun":
        return self

    def __next__(self) -> Finding:
        if self._iter is None:
            self._iter = iter(self._run())
        return next(self._iter)

    def _run(self) -> list[Finding]:
        findings = self._scanner._collect(self._rules, self._cancel, self.warnings)
        self.cancelled = self._cancel.is_set()
        return findings


class Scanner:
    """Measure rule targets concurrently and merge them into ordered findings."""

    def __init__(
        self,
        home: Path,
        workers: int = 4,
        exclude_paths: Iterable[str] = (),
        include_system_paths: bool = True,
        logger: logging.Logger | None = None,
    ):
        self.home = Path(home)
        self.workers = max(1, workers)
        self.exclude_paths = [expand_home(p, self.home) for p in exclude_paths]
        self.include_system_paths = include_system_paths
        self.logger = logger or logging.getLogger(APP_NAME)

    def scan(self, rules: Sequence[Rule]) -> ScanRun:
        return ScanRun(self, rules)

    def resolve_targets(self, rules: Sequence[Rule]) -> list[ScanTarget]:
        targets: list[ScanTarget] = []
        for priority, rule in enumerate(rules):
            for pattern in rule.patterns:
                if not pattern.startswith("~") and not self.include_system_paths:
                    continue
                matches, root = resolve_pattern(pattern, self.home)
                for match in matches:
                    if self._excluded(match):
                        continue
                    targets.append(ScanTarget(rule=rule, path=match, root=root, priority=priority))
        return targets

    def _excluded(self, path: str) -> bool:
        return any(is_subpath(path, ex) for ex in self.exclude_paths)

    def _measure(self, target: ScanTarget, cancel: threading.Event) -> tuple[ScanTarget, Measurement]:
        return target, measure_path(target.path, target.root, target.rule.recursive, cancel)

    def _collect(self, rules: Sequence[Rule], cancel: threading.Event, warnings: list[str]) -> list[Finding]:
        started = time.perf_counter()
        targets = self.resolve_targets(rules)
        measured: list[tuple[ScanTarget, Measurement]] = []
        skipped = 0

        pending_targets = iter(targets)
        in_flight: set[concurrent.futures.Future] = set()
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as ex:
            while True:
                while len(in_flight) < self.workers and not cancel.is_set():
                    nxt = next(pending_targets, None)
                    if nxt is None:
                        break
                    in_flight.add(ex.submit(self._measure, nxt, cancel))
                if not in_flight:
                    break
                done, in_flight = concurrent.futures.wait(in_flight, return_when=concurrent.futures.FIRST_COMPLETED)
                for fut in done:
                    target, m = fut.result()
                    if m.cancelled:
                        skipped += 1
                        continue
                    warnings.extend(m.warnings)
                    measured.append((target, m))

        if cancel.is_set():
            not_started = sum(1 for _ in pending_targets)
            warnings.append(f"scan cancelled: {skipped + not_started} targets not measured")

        now = time.time()
        findings: list[tuple[int, Finding]] = []
        for target, m in measured:
            if m.size_bytes <= 0:
                continue
            min_age = target.rule.min_age_days
            if min_age and m.modified is not None and now - m.modified < min_age * 86400:
                continue
            findings.append((target.priority, self._to_finding(target, m)))

        result = order_findings(dedupe_findings(findings))
        self.logger.info(
            "scan_complete rules=%d targets=%d findings=%d warnings=%d cancelled=%s duration=%.3f",
            len(rules),
            len(targets),
            len(result),
            len(warnings),
            cancel.is_set(),
            time.perf_counter() - started,
        )
        return result

    def _to_finding(self, target: ScanTarget, m: Measurement) -> Finding:
        real = os.path.realpath(target.path)
        path = real if is_subpath(real, target.root) else os.path.abspath(target.path)
        return Finding(
            path=path,
            rule_id=target.rule.rule_id,
            name=target.rule.name,
            category=target.rule.category,
            size_bytes=m.size_bytes,
            risk=target.rule.risk,
            reason=target.rule.reason,
            file_count=m.file_count,
            modified=m.modified,
            accessed=m.accessed,
        )


# ------------------------------ Merge & Order ------------------------------- #


def dedupe_findings(prioritized: Iterable[tuple[int, Finding]]) -> list[Finding]:
    """Collapse findings that resolve to the same place.

    Identical paths keep the first finding by rule priority. A finding nested
    inside another finding's path is folded into its ancestor. In both cases
    the survivor carries the union of categories.
    """
    by_path: dict[str, Finding] = {}
    for _, finding in sorted(prioritized, key=lambda pf: pf[0]):
        kept = by_path.get(finding.path)
        if kept is None:
            by_path[finding.path] = finding
            continue
        for cat in finding.categories:
            if cat not in kept.categories:
                kept.categories.append(cat)

    survivors: list[Finding] = []
    ancestors: list[Finding] = []
    for finding in sorted(by_path.values(), key=lambda f: (len(f.path), f.path)):
        parent = next((a for a in ancestors if finding.path.startswith(a.path.rstrip(os.sep) + os.sep)), None)
        if parent is not None:
            for cat in finding.categories:
                if cat not in parent.categories:
                    parent.categories.append(cat)
            continue
        ancestors.append(finding)
        survivors.append(finding)
    return survivors


def order_findings(findings: Iterable[Finding]) -> list[Finding]:
    return sorted(findings, key=lambda f: (f.category.order, -f.size_bytes, f.path))
