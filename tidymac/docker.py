"""Read-only Docker disk usage via the docker CLI."""

from __future__ import annotations

import re
import shutil
from typing import Any, Callable

from tidymac.common import human_bytes, run_command

SIZE_RE = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*([kKmMgGtT]?B)\s*$")
UNIT_FACTORS = {"B": 1, "KB": 1000, "MB": 1000**2, "GB": 1000**3, "TB": 1000**4}


def parse_docker_size(text: str) -> int:
    """Docker prints decimal units: ``2.5GB``, ``150MB``, ``1.2kB``."""
    m = SIZE_RE.match(text or "")
    if not m:
        return 0
    number, unit = m.groups()
    return int(float(number) * UNIT_FACTORS[unit.upper()])


def parse_system_df(output: str) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        kind, size, reclaimable = parts[0].strip(), parts[1].strip(), parts[2].strip()
        # "1.2GB (45%)"
        reclaimable_size = reclaimable.split(" ", 1)[0]
        size_bytes = parse_docker_size(size)
        reclaim_bytes = parse_docker_size(reclaimable_size)
        rows.append(
            {
                "type": kind,
                "size_bytes": size_bytes,
                "reclaimable_bytes": reclaim_bytes,
                "size_human": human_bytes(size_bytes),
                "reclaimable_human": human_bytes(reclaim_bytes),
            }
        )
    return rows


class DockerInspector:
    """Summarize ``docker system df``. Never prunes anything."""

    def __init__(self, runner: Callable[[list[str], int], tuple[int, str, str]] = run_command):
        self.runner = runner

    def installed(self) -> bool:
        return shutil.which("docker") is not None

    def usage(self) -> dict[str, Any]:
        if self.runner is run_command and not self.installed():
            return {"installed": False, "running": False, "categories": [], "total_bytes": 0, "reclaimable_bytes": 0}

        rc, out, err = self.runner(["docker", "info", "--format", "{{.ServerVersion}}"], 15)
        if rc != 0:
            return {
                "installed": True,
                "running": False,
                "error": err.strip() or "docker daemon not reachable",
                "categories": [],
                "total_bytes": 0,
                "reclaimable_bytes": 0,
            }

        rc, out, err = self.runner(
            ["docker", "system", "df", "--format", "{{.Type}}\t{{.Size}}\t{{.Reclaimable}}"],
            60,
        )
        if rc != 0:
            return {
                "installed": True,
                "running": True,
                "error": err.strip(),
                "categories": [],
                "total_bytes": 0,
                "reclaimable_bytes": 0,
            }
        rows = parse_system_df(out)
        return {
            "installed": True,
            "running": True,
            "categories": rows,
            "total_bytes": sum(r["size_bytes"] for r in rows),
            "reclaimable_bytes": sum(r["reclaimable_bytes"] for r in rows),
        }
