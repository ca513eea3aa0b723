"""Turn findings into a clean plan."""

from __future__ import annotations

import json
from typing import Iterable

from tidymac.errors import InvalidSelection
from tidymac.models import CleanMode, CleanPlan, Finding, RiskTier


def parse_selection(raw: str | None) -> set[str] | None:
    """Parse the boundary's JSON array of display names.

    ``None``, an empty string and JSON ``null`` all mean "every item".
    """
    if raw is None or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidSelection(f"Selection is not valid JSON: {exc.msg}") from exc
    if data is None:
        return None
    if not isinstance(data, list) or not all(isinstance(x, str) for x in data):
        raise InvalidSelection("Selection must be a JSON array of item names")
    return set(data)


def plan(
    findings: Iterable[Finding],
    selection: set[str] | None = None,
    mode: CleanMode = CleanMode.DRY_RUN,
    max_risk: RiskTier = RiskTier.RISKY,
    profile: str | None = None,
) -> CleanPlan:
    if selection is None:
        chosen = list(findings)
    else:
        chosen = [f for f in findings if f.name in selection]
    return CleanPlan(findings=chosen, mode=mode, max_risk=max_risk, profile=profile)
