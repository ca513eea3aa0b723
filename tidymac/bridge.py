"""Host-facing boundary.

``TidyMacBridge`` accepts the primitive inputs a host process can pass (names,
JSON text, ids), parses them once into the closed vocabularies, and returns a
JSON envelope for every call. ``ForeignInterface`` hands those envelopes out as
NUL-terminated buffers owned by this side until the host calls
``tidymac_free_string`` on each one exactly once.
"""

from __future__ import annotations

import ctypes
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field

from tidymac.common import APP_NAME, VERSION, human_bytes, now_utc_iso
from tidymac.engine import Engine
from tidymac.errors import AppNotFound, TidyMacError
from tidymac.models import CleanMode, ProfileName, RiskTier
from tidymac.planner import parse_selection

# ---------------------------- Envelope Models ------------------------------- #


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class BridgeResponse(BaseModel):
    status: Literal["ok", "error"]
    timestamp: str = Field(default_factory=now_utc_iso)
    meta: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    data: Any = None
    error: ErrorBody | None = None


def api_ok(data: Any, *, meta: dict[str, Any] | None = None, warnings: list[str] | None = None) -> BridgeResponse:
    return BridgeResponse(status="ok", meta=meta or {}, warnings=warnings or [], data=data)


def api_error(code: str, message: str, details: dict[str, Any] | None = None) -> BridgeResponse:
    return BridgeResponse(status="error", error=ErrorBody(code=code, message=message, details=details or {}))


# --------------------------------- Bridge ----------------------------------- #


class TidyMacBridge:
    """One method per host call; each returns envelope JSON text."""

    def __init__(self, engine: Engine, logger: logging.Logger | None = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(APP_NAME)

    def call(self, op: str, fn: Callable[[], BridgeResponse]) -> str:
        try:
            response = fn()
        except TidyMacError as exc:
            self.logger.warning("request_rejected op=%s code=%s msg=%s", op, exc.code, exc.message)
            response = api_error(exc.code, exc.message)
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("request_failed op=%s err=%s", op, exc)
            response = api_error("internal_error", str(exc))
        return response.model_dump_json()

    def scan(self, profile_name: str | None) -> str:
        def run() -> BridgeResponse:
            profile = ProfileName.parse(profile_name)
            findings, warnings = self.engine.scan(profile)
            total = sum(f.size_bytes for f in findings)
            return api_ok(
                {
                    "profile": profile.value,
                    "items": [f.to_dict() for f in findings],
                    "total_reclaimable": total,
                    "total_reclaimable_human": human_bytes(total),
                    "total_files": sum(f.file_count for f in findings),
                },
                warnings=warnings,
            )

        return self.call("scan", run)

    def clean(
        self,
        profile_name: str | None,
        mode: str | None,
        selected_names_json: str | None = None,
        max_risk: str | None = None,
    ) -> str:
        def run() -> BridgeResponse:
            profile = ProfileName.parse(profile_name)
            clean_mode = CleanMode.parse(mode)
            selection = parse_selection(selected_names_json)
            ceiling = RiskTier.parse(max_risk) if max_risk else None
            result = self.engine.clean(profile, clean_mode, selection, ceiling)
            data = result.to_dict()
            if result.session is not None:
                data["session"] = result.session.to_dict(include_records=False)
            return api_ok(data, meta={"profile": profile.value}, warnings=result.warnings)

        return self.call("clean", run)

    def disk_usage(self, root: str | None = None) -> str:
        def run() -> BridgeResponse:
            tree, overview, warnings = self.engine.disk_usage(Path(root) if root else None)
            return api_ok({"overview": overview, "tree": tree.to_dict()}, warnings=warnings)

        return self.call("disk_usage", run)

    def apps_list(self) -> str:
        return self.call("apps_list", lambda: api_ok([a.to_dict() for a in self.engine.apps_list()]))

    def app_clean_leftovers(self, app_name: str | None, mode: str | None = "soft") -> str:
        def run() -> BridgeResponse:
            if not app_name or not app_name.strip():
                raise AppNotFound("App name is required")
            clean_mode = CleanMode.parse(mode)
            result = self.engine.app_clean_leftovers(app_name, clean_mode)
            data = result.to_dict()
            if result.session is not None:
                data["session"] = result.session.to_dict(include_records=False)
            return api_ok(data, meta={"app": app_name}, warnings=result.warnings)

        return self.call("app_clean_leftovers", run)

    def privacy_scan(self) -> str:
        def run() -> BridgeResponse:
            findings, warnings = self.engine.privacy_scan()
            total = sum(f.size_bytes for f in findings)
            return api_ok(
                {
                    "items": [f.to_dict() for f in findings],
                    "total_privacy_data_size": total,
                    "high_sensitivity_count": sum(1 for f in findings if f.sensitivity.value == "high"),
                },
                warnings=warnings,
            )

        return self.call("privacy_scan", run)

    def privacy_clean(
        self,
        mode: str | None,
        selected_names_json: str | None = None,
        max_risk: str | None = None,
    ) -> str:
        def run() -> BridgeResponse:
            clean_mode = CleanMode.parse(mode)
            selection = parse_selection(selected_names_json)
            ceiling = RiskTier.parse(max_risk) if max_risk else None
            result = self.engine.privacy_clean(clean_mode, selection, ceiling)
            data = result.to_dict()
            if result.session is not None:
                data["session"] = result.session.to_dict(include_records=False)
            return api_ok(data, meta={"profile": "privacy"}, warnings=result.warnings)

        return self.call("privacy_clean", run)

    def docker_usage(self) -> str:
        return self.call("docker_usage", lambda: api_ok(self.engine.docker_usage()))

    def undo_list(self) -> str:
        def run() -> BridgeResponse:
            sessions = self.engine.undo_list()
            return api_ok(
                {
                    "sessions": [s.to_dict(include_records=False) for s in sessions],
                    "staging_bytes": self.engine.ledger.staging_size(),
                }
            )

        return self.call("undo_list", run)

    def undo_session(self, session_id: str | None) -> str:
        def run() -> BridgeResponse:
            result = self.engine.undo_session((session_id or "").strip())
            warnings = [
                f"{o.original_path}: {o.status.value}"
                for o in result.outcomes
                if o.status.value in {"conflict", "missing", "failed"}
            ]
            return api_ok(result.to_dict(), warnings=warnings)

        return self.call("undo_session", run)

    def profiles_list(self) -> str:
        return self.call("profiles_list", lambda: api_ok(self.engine.profiles_list()))

    def version(self) -> str:
        return self.call("version", lambda: api_ok({"name": APP_NAME, "version": VERSION}))


# ---------------------------- String Ownership ------------------------------ #


class ForeignStrings:
    """Registry of exported buffers, keyed by address, released on request."""

    def __init__(self):
        self._live: dict[int, ctypes.Array] = {}
        self._lock = threading.Lock()

    def export(self, text: str) -> int:
        buf = ctypes.create_string_buffer(text.encode("utf-8"))
        addr = ctypes.addressof(buf)
        with self._lock:
            self._live[addr] = buf
        return addr

    def read(self, addr: int) -> str:
        with self._lock:
            if addr not in self._live:
                raise ValueError(f"No live string at address {addr:#x}")
        return ctypes.string_at(addr).decode("utf-8")

    def release(self, addr: int) -> None:
        with self._lock:
            if self._live.pop(addr, None) is None:
                raise ValueError(f"String at {addr:#x} was never exported or was already released")

    @property
    def outstanding(self) -> int:
        with self._lock:
            return len(self._live)


class ForeignInterface:
    """Address-returning surface mirroring the host's C header."""

    def __init__(self, bridge: TidyMacBridge, strings: ForeignStrings | None = None):
        self.bridge = bridge
        self.strings = strings or ForeignStrings()

    def tidymac_free_string(self, ptr: int) -> None:
        self.strings.release(ptr)

    def tidymac_scan(self, profile_name: str | None) -> int:
        return self.strings.export(self.bridge.scan(profile_name))

    def tidymac_disk_usage(self) -> int:
        return self.strings.export(self.bridge.disk_usage())

    def tidymac_apps_list(self) -> int:
        return self.strings.export(self.bridge.apps_list())

    def tidymac_app_clean_leftovers(self, app_name: str | None) -> int:
        return self.strings.export(self.bridge.app_clean_leftovers(app_name))

    def tidymac_clean(self, profile_name: str | None, mode: str | None, selected_names_json: str | None) -> int:
        return self.strings.export(self.bridge.clean(profile_name, mode, selected_names_json))

    def tidymac_privacy_scan(self) -> int:
        return self.strings.export(self.bridge.privacy_scan())

    def tidymac_privacy_clean(self, mode: str | None, selected_names_json: str | None) -> int:
        return self.strings.export(self.bridge.privacy_clean(mode, selected_names_json))

    def tidymac_docker_usage(self) -> int:
        return self.strings.export(self.bridge.docker_usage())

    def tidymac_undo_list(self) -> int:
        return self.strings.export(self.bridge.undo_list())

    def tidymac_undo_session(self, session_id: str | None) -> int:
        return self.strings.export(self.bridge.undo_session(session_id))

    def tidymac_profiles_list(self) -> int:
        return self.strings.export(self.bridge.profiles_list())

    def tidymac_version(self) -> int:
        return self.strings.export(self.bridge.version())
