"""Shared fixtures for TidyMac tests.

Every test works against a throwaway home directory under ``tmp_path`` and
scans with system paths disabled, so nothing outside the sandbox is touched.
"""

import logging
from pathlib import Path

import pytest

from tidymac.config import EngineConfig
from tidymac.engine import Engine
from tidymac.ledger import UndoLedger
from tidymac.models import Category, Finding, RiskTier
from tidymac.scanner import Scanner


@pytest.fixture
def logger():
    return logging.getLogger("tidymac.tests")


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def make_file():
    def _make(path: Path, size: int = 4096, fill: bytes = b"x") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(fill * size)
        return path

    return _make


@pytest.fixture
def make_finding():
    def _make(
        path: Path,
        name: str | None = None,
        size: int = 4096,
        risk: RiskTier = RiskTier.SAFE,
        category: Category = Category.CACHE,
    ) -> Finding:
        return Finding(
            path=str(path),
            rule_id="test",
            name=name or Path(path).name,
            category=category,
            size_bytes=size,
            risk=risk,
        )

    return _make


@pytest.fixture
def populated_home(home, make_file):
    """A home with a few developer caches, logs and trash."""
    make_file(home / "Library" / "Caches" / "pip" / "wheels" / "a.whl", 8192)
    make_file(home / "Library" / "Caches" / "com.example.editor" / "cache.db", 4096)
    make_file(home / ".npm" / "_cacache" / "content-v2" / "blob", 16384)
    make_file(home / "Library" / "Logs" / "editor" / "editor.log", 2048)
    make_file(home / ".Trash" / "old-notes.txt", 1024)
    return home


@pytest.fixture
def config(home, data_dir, tmp_path):
    return EngineConfig(
        home=home,
        data_dir=data_dir,
        scan_workers=2,
        include_system_paths=False,
        app_dirs=[tmp_path / "Applications"],
        log_file=data_dir / "logs" / "actions.log",
    )


@pytest.fixture
def scanner(home, logger):
    return Scanner(home=home, workers=2, include_system_paths=False, logger=logger)


@pytest.fixture
def ledger(data_dir, logger):
    led = UndoLedger(data_dir, retention_days=7, logger=logger)
    yield led
    led.close()


@pytest.fixture
def engine(config, logger):
    eng = Engine(config, logger=logger)
    yield eng
    eng.close()


@pytest.fixture
def cancel_after_first_target(monkeypatch):
    """Set a scan's cancel event as soon as its first target is measured."""
    measure = Scanner._measure

    def _measure(self, target, cancel):
        result = measure(self, target, cancel)
        cancel.set()
        return result

    monkeypatch.setattr(Scanner, "_measure", _measure)
