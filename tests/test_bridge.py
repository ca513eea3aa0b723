"""Tests for the host-facing envelope API and string ownership."""

import json

import pytest

from tidymac.bridge import ForeignInterface, ForeignStrings, TidyMacBridge


@pytest.fixture
def bridge(engine, logger):
    return TidyMacBridge(engine, logger=logger)


def call(raw):
    body = json.loads(raw)
    assert set(body) >= {"status", "data", "warnings", "error"}
    return body


@pytest.mark.parametrize(
    "invoke, code",
    [
        (lambda b: b.scan("not-a-profile"), "unknown_profile"),
        (lambda b: b.clean("quick", "shred"), "unknown_mode"),
        (lambda b: b.clean("mystery", "soft"), "unknown_profile"),
        (lambda b: b.clean("quick", "soft", "{bad"), "invalid_selection"),
        (lambda b: b.clean("quick", "soft", None, "extreme"), "unknown_risk_tier"),
        (lambda b: b.undo_session("20200101_000000_deadbeef"), "session_not_found"),
        (lambda b: b.app_clean_leftovers(""), "app_not_found"),
        (lambda b: b.app_clean_leftovers("Nothing Here"), "app_not_found"),
        (lambda b: b.app_clean_leftovers("../../Projects"), "app_not_found"),
        (lambda b: b.clean("quick", "delete"), "unknown_mode"),
        (lambda b: b.clean("quick", "dry-run"), "unknown_mode"),
        (lambda b: b.scan("dev"), "unknown_profile"),
    ],
)
def test_request_errors_are_structured(bridge, invoke, code):
    body = call(invoke(bridge))
    assert body["status"] == "error"
    assert body["error"]["code"] == code
    assert body["data"] is None


def test_request_errors_have_no_side_effects(bridge, engine, populated_home):
    call(bridge.clean("quick", "shred"))
    call(bridge.clean("quick", "delete"))
    assert (populated_home / ".Trash" / "old-notes.txt").exists()
    assert (populated_home / "Library" / "Caches" / "pip").exists()
    assert engine.undo_list() == []


def test_scan_envelope(bridge, populated_home):
    body = call(bridge.scan("quick"))
    assert body["status"] == "ok"
    data = body["data"]
    assert data["profile"] == "quick"
    assert data["items"]
    assert data["total_reclaimable"] == sum(i["size_bytes"] for i in data["items"])
    assert body["warnings"] == []


def test_selected_soft_clean_and_undo(bridge, populated_home):
    pip = populated_home / "Library" / "Caches" / "pip"
    npm = populated_home / ".npm" / "_cacache"

    body = call(bridge.clean("developer", "soft", json.dumps(["pip Cache"])))
    assert body["status"] == "ok"
    assert body["data"]["succeeded"] == 1
    assert not pip.exists()
    assert npm.exists()
    session_id = body["data"]["session_id"]
    assert session_id

    listed = call(bridge.undo_list())["data"]
    assert [s["session_id"] for s in listed["sessions"]] == [session_id]
    assert listed["staging_bytes"] > 0

    restored = call(bridge.undo_session(session_id))
    assert restored["data"]["restored_count"] == 1
    assert pip.exists()


def test_dry_run_envelope(bridge, populated_home):
    body = call(bridge.clean("quick", "dry_run"))
    data = body["data"]
    assert data["session_id"] is None
    assert data["bytes_reclaimed"] == 0
    assert data["estimated_bytes"] > 0
    assert (populated_home / ".Trash" / "old-notes.txt").exists()


def test_busy_ledger_is_reported(bridge, engine, populated_home):
    with engine.ledger.exclusive():
        body = call(bridge.clean("quick", "soft"))
    assert body["error"]["code"] == "ledger_busy"
    assert (populated_home / ".Trash" / "old-notes.txt").exists()


def test_read_only_operations(bridge):
    assert call(bridge.privacy_scan())["status"] == "ok"
    assert call(bridge.apps_list())["data"] == []
    assert [p["name"] for p in call(bridge.profiles_list())["data"]] == ["quick", "developer", "creative", "deep"]
    assert call(bridge.version())["data"]["name"] == "tidymac"
    usage = call(bridge.disk_usage())
    assert usage["status"] == "ok"
    assert "tree" in usage["data"]


def test_unexpected_failures_become_internal_errors(bridge, engine, monkeypatch):
    def boom():
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(engine, "apps_list", boom)
    body = call(bridge.apps_list())
    assert body["error"]["code"] == "internal_error"


def test_strings_are_released_exactly_once():
    strings = ForeignStrings()
    addr = strings.export('{"status": "ok"}')
    assert strings.read(addr) == '{"status": "ok"}'
    assert strings.outstanding == 1
    strings.release(addr)
    assert strings.outstanding == 0
    with pytest.raises(ValueError):
        strings.release(addr)
    with pytest.raises(ValueError):
        strings.read(addr)


def test_foreign_interface_round_trip(bridge):
    ffi = ForeignInterface(bridge)
    addr = ffi.tidymac_version()
    body = json.loads(ffi.strings.read(addr))
    assert body["status"] == "ok"
    ffi.tidymac_free_string(addr)
    assert ffi.strings.outstanding == 0

    err = ffi.tidymac_clean("quick", "shred", None)
    assert json.loads(ffi.strings.read(err))["error"]["code"] == "unknown_mode"
    ffi.tidymac_free_string(err)


def test_risk_ceiling_from_the_boundary(bridge, home, make_file):
    make_file(home / "Library" / "Caches" / "pip" / "wheel", 4096)
    body = call(bridge.clean("developer", "soft", None, "safe"))
    assert body["data"]["succeeded"] == 1

    docker = make_file(home / ".docker" / "config.json", 4096)
    body = call(bridge.clean("developer", "soft", None, "caution"))
    actions = {a["name"]: a for a in body["data"]["actions"]}
    assert actions["Docker Data"]["outcome"] == "skipped"
    assert docker.exists()


def test_privacy_clean_envelope(bridge, home, make_file):
    history = make_file(home / "Library" / "Safari" / "History.db", 8192)
    cookies = make_file(home / "Library" / "Cookies" / "Cookies.binarycookies", 4096)

    body = call(bridge.privacy_clean("soft", json.dumps(["Safari History"])))
    assert body["status"] == "ok"
    assert body["meta"]["profile"] == "privacy"
    assert body["data"]["succeeded"] == 1
    assert not history.exists()
    assert cookies.exists()

    restored = call(bridge.undo_session(body["data"]["session_id"]))
    assert restored["data"]["restored_count"] == 1
    assert history.exists()

    assert call(bridge.privacy_clean("delete"))["error"]["code"] == "unknown_mode"
    assert cookies.exists()
