"""Hierarchical disk usage, volume capacity and chart export."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import threading
from pathlib import Path
from typing import Any

from tidymac.common import APP_NAME, human_bytes
from tidymac.models import DiskUsageNode
from tidymac.scanner import measure_path, physical_size

OVERVIEW_CATEGORIES = (
    ("Applications", "/Applications"),
    ("Documents", "~/Documents"),
    ("Desktop", "~/Desktop"),
    ("Downloads", "~/Downloads"),
    ("Pictures", "~/Pictures"),
    ("Music", "~/Music"),
    ("Movies", "~/Movies"),
    ("Developer", "~/Developer"),
    ("Library Caches", "~/Library/Caches"),
    ("Library App Support", "~/Library/Application Support"),
)


class DiskUsageAnalyzer:
    """Bounded-depth, bounded-fan-out usage tree. Read-only."""

    def __init__(
        self,
        max_depth: int = 4,
        max_children: int = 12,
        logger: logging.Logger | None = None,
    ):
        self.max_depth = max(0, max_depth)
        self.max_children = max(1, max_children)
        self.logger = logger or logging.getLogger(APP_NAME)
        self.warnings: list[str] = []
        self.cancelled = False
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop the analysis in progress; sizes gathered so far are kept."""
        self._cancel.set()

    def analyze(self, root: str | Path) -> DiskUsageNode:
        self.warnings = []
        self._cancel.clear()
        root_path = os.path.abspath(os.fspath(root))
        node = self._node(root_path, root_path, depth=0)
        self.cancelled = self._cancel.is_set()
        if self.cancelled:
            self.warnings.append("usage cancelled: sizes are partial")
        self.logger.info(
            "usage_complete root=%s bytes=%d warnings=%d cancelled=%s",
            root_path,
            node.size_bytes,
            len(self.warnings),
            self.cancelled,
        )
        return node

    def _node(self, path: str, root: str, depth: int) -> DiskUsageNode:
        name = os.path.basename(path.rstrip(os.sep)) or path
        try:
            st = os.lstat(path)
        except OSError as exc:
            self.warnings.append(f"{path}: {exc.strerror or exc}")
            return DiskUsageNode(path=path, name=name)

        if not stat.S_ISDIR(st.st_mode):
            return DiskUsageNode(path=path, name=name, size_bytes=physical_size(st))

        if depth >= self.max_depth or self._cancel.is_set():
            m = measure_path(path, root, cancel=self._cancel)
            self.warnings.extend(m.warnings)
            return DiskUsageNode(path=path, name=name, size_bytes=m.size_bytes)

        children: list[DiskUsageNode] = []
        try:
            with os.scandir(path) as it:
                entries = [e.path for e in it]
        except OSError as exc:
            self.warnings.append(f"{path}: {exc.strerror or exc}")
            return DiskUsageNode(path=path, name=name)

        for child in entries:
            children.append(self._node(child, root, depth + 1))

        children.sort(key=lambda c: (-c.size_bytes, c.name))
        total = sum(c.size_bytes for c in children)
        if len(children) > self.max_children:
            kept = children[: self.max_children]
            rest = children[self.max_children :]
            kept.append(
                DiskUsageNode(
                    path=os.path.join(path, "..."),
                    name=f"other ({len(rest)} items)",
                    size_bytes=sum(c.size_bytes for c in rest),
                    is_other=True,
                )
            )
            children = kept
        return DiskUsageNode(path=path, name=name, size_bytes=total, children=children)


def volume_stats(path: str | Path = "/") -> dict[str, Any]:
    usage = shutil.disk_usage(os.fspath(path))
    pct = round(usage.used / usage.total * 100, 1) if usage.total else 0.0
    return {
        "mount_point": os.fspath(path),
        "total_bytes": usage.total,
        "used_bytes": usage.used,
        "free_bytes": usage.free,
        "used_percentage": pct,
        "total_human": human_bytes(usage.total),
        "free_human": human_bytes(usage.free),
    }


def storage_overview(home: Path, include_system_paths: bool = True) -> dict[str, Any]:
    """Volume capacity plus the size of well-known home locations."""
    stats = volume_stats(home if home.exists() else "/")
    categories: list[dict[str, Any]] = []
    for label, raw in OVERVIEW_CATEGORIES:
        if not raw.startswith("~") and not include_system_paths:
            continue
        path = str(home / raw[2:]) if raw.startswith("~/") else raw
        if not os.path.isdir(path):
            continue
        size = measure_path(path, path).size_bytes
        if size <= 0:
            continue
        pct = round(size / stats["total_bytes"] * 100, 1) if stats["total_bytes"] else 0.0
        categories.append({"name": label, "path": path, "size_bytes": size, "percentage": pct})
    categories.sort(key=lambda c: -c["size_bytes"])
    stats["categories"] = categories
    return stats


# ----------------------------- Visual Reporting ----------------------------- #


class UsageChart:
    """Render a usage tree's top level as a PNG bar chart."""

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _import_matplotlib(self):
        try:
            import matplotlib

            matplotlib.use("Agg")
            import matplotlib.pyplot as plt
            return plt
        except Exception as exc:  # pylint: disable=broad-except
            raise RuntimeError(
                "matplotlib is required for chart export. Install with: pip install matplotlib"
            ) from exc

    def chart_children_bar(self, node: DiskUsageNode, top_n: int = 15) -> str:
        plt = self._import_matplotlib()
        data = [c for c in node.children if c.size_bytes > 0][:top_n]
        if not data:
            return ""
        labels = [c.name for c in data]
        values = [c.size_bytes / (1024 ** 2) for c in data]
        fig, ax = plt.subplots(figsize=(12, 6))
        ax.bar(labels, values)
        ax.set_title(f"Largest Items in {node.name} (MB)")
        ax.set_ylabel("MB")
        ax.tick_params(axis="x", labelrotation=30)
        out = self.output_dir / "usage_children_bar.png"
        fig.tight_layout()
        fig.savefig(out, dpi=150)
        plt.close(fig)
        return str(out)
