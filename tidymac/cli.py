#!/usr/bin/env python3
"""TidyMac command line.

Every command prints the same JSON envelope the host bridge returns, so the
CLI doubles as a way to exercise the boundary by hand.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from tidymac.bridge import BridgeResponse, TidyMacBridge, api_error, api_ok
from tidymac.common import VERSION, ensure_parent
from tidymac.config import load_config
from tidymac.disk_usage import UsageChart
from tidymac.engine import Engine
from tidymac.errors import TidyMacError
from tidymac.models import CleanMode, RiskTier


def export_json(path: Path, obj: Any) -> None:
    ensure_parent(path)
    path.write_text(json.dumps(obj, indent=2, ensure_ascii=True), encoding="utf-8")


def require_confirm(args: argparse.Namespace, message: str) -> bool:
    if getattr(args, "yes", False):
        return True
    ans = input(f"{message} [y/N]: ").strip().lower()
    return ans in {"y", "yes"}


def cancelled(command: str) -> str:
    return api_ok({"command": command, "status": "cancelled"}).model_dump_json()


# ------------------------------- Commands ----------------------------------- #


def command_scan(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    return bridge.scan(args.profile)


def command_clean(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    selection = json.dumps(args.select) if args.select else None
    if args.mode == CleanMode.HARD.value and not require_confirm(
        args, "Hard mode deletes permanently and cannot be undone. Continue?"
    ):
        return cancelled("clean")
    return bridge.clean(args.profile, args.mode, selection, args.max_risk)


def command_apps(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    return bridge.apps_list()


def command_leftovers(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    if args.clean:
        if args.mode == CleanMode.HARD.value and not require_confirm(
            args, f"Permanently delete leftovers of {args.app}?"
        ):
            return cancelled("leftovers")
        return bridge.app_clean_leftovers(args.app, args.mode)

    def run() -> BridgeResponse:
        findings, warnings = bridge.engine.app_leftovers(args.app)
        return api_ok(
            {"app": args.app, "items": [f.to_dict() for f in findings]},
            warnings=warnings,
        )

    return bridge.call("leftovers", run)


def command_privacy(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    if not args.clean:
        return bridge.privacy_scan()
    selection = json.dumps(args.select) if args.select else None
    if args.mode == CleanMode.HARD.value and not require_confirm(
        args, "Permanently delete the selected privacy data?"
    ):
        return cancelled("privacy")
    return bridge.privacy_clean(args.mode, selection, args.max_risk)


def command_usage(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    if not args.chart_dir:
        return bridge.disk_usage(args.root)

    def run() -> BridgeResponse:
        tree, overview, warnings = bridge.engine.disk_usage(Path(args.root) if args.root else None)
        chart = UsageChart(Path(args.chart_dir)).chart_children_bar(tree, top_n=args.top_n)
        return api_ok({"overview": overview, "tree": tree.to_dict(), "chart": chart}, warnings=warnings)

    return bridge.call("usage", run)


def command_docker(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    return bridge.docker_usage()


def command_undo(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    engine = bridge.engine
    if args.undo_command == "list":
        if not args.all:
            return bridge.undo_list()
        return bridge.call(
            "undo_list",
            lambda: api_ok({"sessions": [s.to_dict(include_records=False) for s in engine.undo_list(include_retired=True)]}),
        )
    if args.undo_command == "show":
        return bridge.call("undo_show", lambda: api_ok(engine.ledger.get(args.session_id).to_dict()))
    if args.undo_command == "restore":
        if not require_confirm(args, f"Restore quarantined files for session {args.session_id}?"):
            return cancelled("undo")
        return bridge.undo_session(args.session_id)
    if args.undo_command == "purge":
        if args.session_id:
            if not require_confirm(args, f"Permanently delete quarantined files of {args.session_id}?"):
                return cancelled("undo")
            return bridge.call("undo_purge", lambda: api_ok(engine.ledger.purge_session(args.session_id)))
        return bridge.call("undo_purge", lambda: api_ok(engine.purge_expired()))
    raise ValueError(f"Unknown undo command: {args.undo_command}")


def command_profiles(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    return bridge.profiles_list()


def command_version(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    return bridge.version()


# -------------------------------- Parser ------------------------------------ #


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tidymac",
        description="TidyMac disk cleanup and privacy audit engine",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", default=None, help="Path to config.toml")
    parser.add_argument("--output", default=None, help="Also write the JSON result to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    sub = parser.add_subparsers(dest="command", required=True)

    profiles = ["quick", "developer", "creative", "deep"]
    modes = [m.value for m in CleanMode]

    p = sub.add_parser("scan", help="Scan with a cleanup profile")
    p.add_argument("--profile", default="quick", choices=profiles)

    p = sub.add_parser("clean", help="Clean items found by a profile scan (dry run by default)")
    p.add_argument("--profile", default="quick", choices=profiles)
    p.add_argument("--mode", default="dry_run", choices=modes)
    p.add_argument("--select", action="append", default=None, metavar="NAME", help="Only clean items with this display name")
    p.add_argument("--max-risk", default=None, choices=[r.value for r in RiskTier], help="Skip items above this risk tier")
    p.add_argument("--yes", action="store_true", help="Non-interactive yes for confirmations")

    sub.add_parser("apps", help="List installed applications")

    p = sub.add_parser("leftovers", help="Find (and optionally clean) data an app leaves behind")
    p.add_argument("app", help="App display name or bundle identifier")
    p.add_argument("--clean", action="store_true", help="Clean the leftovers instead of listing them")
    p.add_argument("--mode", default="soft", choices=modes)
    p.add_argument("--yes", action="store_true")

    p = sub.add_parser("privacy", help="Privacy audit (read-only unless --clean)")
    p.add_argument("--clean", action="store_true", help="Clean audited items instead of only listing them")
    p.add_argument("--mode", default="dry_run", choices=modes)
    p.add_argument("--select", action="append", default=None, metavar="NAME", help="Only clean items with this display name")
    p.add_argument("--max-risk", default=None, choices=[r.value for r in RiskTier], help="Skip items above this risk tier")
    p.add_argument("--yes", action="store_true")

    p = sub.add_parser("usage", help="Hierarchical disk usage")
    p.add_argument("--root", default=None, help="Directory to analyze (defaults to home)")
    p.add_argument("--chart-dir", default=None, help="Write a PNG bar chart of the largest children here")
    p.add_argument("--top-n", type=int, default=15)

    sub.add_parser("docker", help="Docker disk usage summary")

    p = sub.add_parser("undo", help="Inspect, restore or purge undo sessions")
    undo_sub = p.add_subparsers(dest="undo_command", required=True)
    q = undo_sub.add_parser("list", help="List sessions, newest first")
    q.add_argument("--all", action="store_true", help="Include retired sessions")
    q = undo_sub.add_parser("show", help="Show one session with its records")
    q.add_argument("session_id")
    q = undo_sub.add_parser("restore", help="Restore a session")
    q.add_argument("session_id")
    q.add_argument("--yes", action="store_true")
    q = undo_sub.add_parser("purge", help="Purge expired sessions, or one session by id")
    q.add_argument("session_id", nargs="?", default=None)
    q.add_argument("--yes", action="store_true")

    sub.add_parser("profiles", help="List cleanup profiles")
    sub.add_parser("version", help="Print engine version")

    return parser


def dispatch(bridge: TidyMacBridge, args: argparse.Namespace) -> str:
    cmd = args.command
    if cmd == "scan":
        return command_scan(bridge, args)
    if cmd == "clean":
        return command_clean(bridge, args)
    if cmd == "apps":
        return command_apps(bridge, args)
    if cmd == "leftovers":
        return command_leftovers(bridge, args)
    if cmd == "privacy":
        return command_privacy(bridge, args)
    if cmd == "usage":
        return command_usage(bridge, args)
    if cmd == "docker":
        return command_docker(bridge, args)
    if cmd == "undo":
        return command_undo(bridge, args)
    if cmd == "profiles":
        return command_profiles(bridge, args)
    if cmd == "version":
        return command_version(bridge, args)
    raise ValueError(f"Unknown command: {cmd}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(Path(args.config) if args.config else None)
    except TidyMacError as exc:
        print(api_error(exc.code, exc.message).model_dump_json(indent=2), file=sys.stderr)
        return 1

    engine = Engine(config)
    try:
        body = json.loads(dispatch(TidyMacBridge(engine), args))
        if args.output:
            export_json(Path(args.output), body)
        ok = body.get("status") == "ok"
        print(json.dumps(body, indent=2), file=sys.stdout if ok else sys.stderr)
        return 0 if ok else 1
    finally:
        engine.close()


if __name__ == "__main__":
    raise SystemExit(main())
