"""Engine configuration.

Defaults can be overridden by ``<data_dir>/config.toml`` and then by
``TIDYMAC_*`` environment variables, in that order.
"""

from __future__ import annotations

import dataclasses
import os
import tempfile
import tomllib
from pathlib import Path
from typing import Any, Mapping

from tidymac.common import APP_NAME
from tidymac.errors import ConfigError
from tidymac.models import RiskTier

DEFAULT_RETENTION_DAYS = 7
DEFAULT_USAGE_MAX_DEPTH = 4
DEFAULT_USAGE_MAX_CHILDREN = 12


def default_workers() -> int:
    return max(2, min(8, os.cpu_count() or 2))


@dataclasses.dataclass(slots=True)
class EngineConfig:
    home: Path
    data_dir: Path
    retention_days: int = DEFAULT_RETENTION_DAYS
    scan_workers: int = dataclasses.field(default_factory=default_workers)
    exclude_paths: list[str] = dataclasses.field(default_factory=list)
    usage_max_depth: int = DEFAULT_USAGE_MAX_DEPTH
    usage_max_children: int = DEFAULT_USAGE_MAX_CHILDREN
    default_max_risk: RiskTier = RiskTier.RISKY
    app_dirs: list[Path] = dataclasses.field(default_factory=list)
    include_system_paths: bool = True
    log_file: Path | None = None

    def __post_init__(self) -> None:
        if not self.app_dirs:
            self.app_dirs = [Path("/Applications"), self.home / "Applications"]
        if self.log_file is None:
            self.log_file = self.data_dir / "logs" / "actions.log"

    @property
    def staging_dir(self) -> Path:
        return self.data_dir / "staging"

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / "ledger.db"


def resolve_writable_dir(preferred: Path, fallback_name: str) -> Path:
    """Return preferred directory when writable, otherwise a fallback in the temp dir."""
    try:
        preferred.mkdir(parents=True, exist_ok=True)
        probe = preferred / ".write_probe"
        probe.touch(exist_ok=True)
        probe.unlink(missing_ok=True)
        return preferred
    except OSError:
        fallback = Path(tempfile.gettempdir()) / APP_NAME / fallback_name
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as fh:
            data = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Malformed config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    # [engine] table is optional; top-level keys are accepted too
    engine = data.get("engine", {})
    if not isinstance(engine, dict):
        raise ConfigError("[engine] must be a table")
    merged = {k: v for k, v in data.items() if k != "engine"}
    merged.update(engine)
    return merged


def _positive_int(raw: Any, key: str, allow_zero: bool = False) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def load_config(
    config_file: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> EngineConfig:
    env = os.environ if env is None else env

    home = Path(env.get("TIDYMAC_HOME") or Path.home()).expanduser()
    data_dir = Path(env.get("TIDYMAC_DATA_DIR") or home / f".{APP_NAME}").expanduser()

    path = config_file
    if path is None and env.get("TIDYMAC_CONFIG"):
        path = Path(env["TIDYMAC_CONFIG"]).expanduser()
    if path is None:
        path = data_dir / "config.toml"

    values: dict[str, Any] = {}
    if path.exists():
        values = _read_toml(path)
    elif config_file is not None:
        raise ConfigError(f"Config file not found: {config_file}")

    if "home" in values and not env.get("TIDYMAC_HOME"):
        home = Path(str(values["home"])).expanduser()
    if "data_dir" in values and not env.get("TIDYMAC_DATA_DIR"):
        data_dir = Path(str(values["data_dir"])).expanduser()

    cfg = EngineConfig(home=home, data_dir=data_dir)

    if "retention_days" in values:
        cfg.retention_days = _positive_int(values["retention_days"], "retention_days", allow_zero=True)
    if "scan_workers" in values:
        cfg.scan_workers = _positive_int(values["scan_workers"], "scan_workers")
    if "usage_max_depth" in values:
        cfg.usage_max_depth = _positive_int(values["usage_max_depth"], "usage_max_depth", allow_zero=True)
    if "usage_max_children" in values:
        cfg.usage_max_children = _positive_int(values["usage_max_children"], "usage_max_children")
    if "exclude_paths" in values:
        raw = values["exclude_paths"]
        if not isinstance(raw, list) or not all(isinstance(x, str) for x in raw):
            raise ConfigError("exclude_paths must be a list of strings")
        cfg.exclude_paths = list(raw)
    if "app_dirs" in values:
        raw = values["app_dirs"]
        if not isinstance(raw, list) or not all(isinstance(x, str) for x in raw):
            raise ConfigError("app_dirs must be a list of strings")
        cfg.app_dirs = [Path(x).expanduser() for x in raw]
    if "include_system_paths" in values:
        if not isinstance(values["include_system_paths"], bool):
            raise ConfigError("include_system_paths must be true or false")
        cfg.include_system_paths = values["include_system_paths"]
    if "default_max_risk" in values:
        try:
            cfg.default_max_risk = RiskTier(str(values["default_max_risk"]).lower())
        except ValueError as exc:
            raise ConfigError("default_max_risk must be one of safe, caution, risky") from exc

    if env.get("TIDYMAC_RETENTION_DAYS"):
        cfg.retention_days = _positive_int(env["TIDYMAC_RETENTION_DAYS"], "TIDYMAC_RETENTION_DAYS", allow_zero=True)
    if env.get("TIDYMAC_USER_ONLY", "").lower() in {"1", "true", "yes"}:
        cfg.include_system_paths = False
    if env.get("TIDYMAC_WORKERS"):
        cfg.scan_workers = _positive_int(env["TIDYMAC_WORKERS"], "TIDYMAC_WORKERS")
    if env.get("TIDYMAC_LOG"):
        cfg.log_file = Path(env["TIDYMAC_LOG"]).expanduser()
    elif "log_file" in values:
        cfg.log_file = Path(str(values["log_file"])).expanduser()

    return cfg
