"""Shared utilities for the TidyMac engine.

Time and size formatting, path-safety checks, the subprocess helper and the
single named logger used across every component.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import subprocess
import tempfile
from pathlib import Path

# ------------------------------- Constants ---------------------------------- #

APP_NAME = "tidymac"
VERSION = "0.4.0"

PROTECTED_SYSTEM_PATHS = {
    "/",
    "/System",
    "/Applications",
    "/Users",
    "/Library",
    "/usr",
    "/bin",
    "/sbin",
    "/var",
    "/etc",
    "/opt",
    "/private",
    "/private/var",
    "/private/etc",
    "/cores",
    "/Volumes",
}

PROTECTED_HOME_CHILDREN = (
    "Desktop",
    "Documents",
    "Downloads",
    "Pictures",
    "Music",
    "Movies",
    "Library",
    "Applications",
    ".ssh",
    ".gnupg",
    "Library/Keychains",
    "Library/Mobile Documents",
)


# ------------------------------- Utilities ---------------------------------- #


def now_utc_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat()


def iso_from_epoch(epoch: float | None) -> str | None:
    if epoch is None:
        return None
    return dt.datetime.fromtimestamp(epoch, dt.timezone.utc).replace(microsecond=0).isoformat()


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def human_bytes(size: int) -> str:
    val = float(max(size, 0))
    for unit in ["B", "KB", "MB", "GB", "TB", "PB"]:
        if val < 1024.0 or unit == "PB":
            if unit == "B":
                return f"{int(val)} {unit}"
            return f"{val:.2f} {unit}"
        val /= 1024.0
    return f"{size} B"


def is_subpath(path: str, root: str) -> bool:
    p = os.path.realpath(path)
    r = os.path.realpath(root)
    return p == r or p.startswith(r + os.sep)


def expand_home(pattern: str, home: Path) -> str:
    if pattern == "~":
        return str(home)
    if pattern.startswith("~/"):
        return str(home / pattern[2:])
    return pattern


def is_protected(path: str, home: Path) -> bool:
    """True when ``path`` is a system root or a top-level user folder.

    Only the exact locations are protected; content below them (for example
    ``~/Library/Caches/foo``) remains eligible.
    """
    rp = os.path.realpath(path)
    if rp in PROTECTED_SYSTEM_PATHS:
        return True
    real_home = os.path.realpath(str(home))
    if rp == real_home:
        return True
    return any(rp == os.path.join(real_home, child) for child in PROTECTED_HOME_CHILDREN)


def run_command(command: list[str], timeout: int = 120) -> tuple[int, str, str]:
    try:
        cp = subprocess.run(
            command,
            text=True,
            capture_output=True,
            timeout=timeout,
            check=False,
        )
        return cp.returncode, cp.stdout, cp.stderr
    except Exception as exc:  # pylint: disable=broad-except
        return 1, "", str(exc)


def setup_logger(log_file: Path) -> logging.Logger:
    logger = logging.getLogger(APP_NAME)
    if logger.handlers:
        return logger

    chosen = log_file
    try:
        ensure_parent(log_file)
    except OSError:
        chosen = Path(tempfile.gettempdir()) / APP_NAME / "actions.log"
        ensure_parent(chosen)

    logger.setLevel(logging.INFO)
    fh = logging.FileHandler(chosen, encoding="utf-8")
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    fh.setFormatter(fmt)
    logger.addHandler(fh)
    return logger
