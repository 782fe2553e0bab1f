"""Report renderers: JSON records, per-unit templates and grouped text."""

from __future__ import annotations

import json
import string
from typing import Iterable, List

from .errors import UsageError
from .models import ReportUnit

TEMPLATE_FIELDS = frozenset({"path", "funcs", "count"})


def render_json(units: Iterable[ReportUnit]) -> str:
    return json.dumps([u.to_dict() for u in units], indent=2) + "\n"


def validate_template(template: str) -> None:
    """Reject format strings that reference unknown fields or do not parse."""
    try:
        parsed = list(string.Formatter().parse(template))
    except ValueError as exc:
        raise UsageError(f"--format: {exc}") from exc
    for _, field_name, _, _ in parsed:
        if field_name is None:
            continue
        base = field_name.split(".")[0].split("[")[0]
        if base not in TEMPLATE_FIELDS:
            raise UsageError(
                f"--format: unknown field {{{field_name}}} (use {', '.join(sorted(TEMPLATE_FIELDS))})"
            )


def render_template(units: Iterable[ReportUnit], template: str) -> str:
    """Apply *template* to each unit record, one line per unit.

    ``{funcs}`` is the list of function records (dicts), so
    ``{funcs[0][name]}`` works as in ``str.format``.
    """
    validate_template(template)
    lines: List[str] = []
    for unit in units:
        record = unit.to_dict()
        try:
            text = template.format(path=unit.path, funcs=record["funcs"], count=len(unit.funcs))
        except (IndexError, KeyError, AttributeError, ValueError) as exc:
            raise UsageError(f"--format: executing template for {unit.path}: {exc}") from exc
        if not text.endswith("\n"):
            text += "\n"
        lines.append(text)
    return "".join(lines)


def render_text(units: Iterable[ReportUnit]) -> str:
    out: List[str] = []
    for unit in units:
        if not unit.funcs:
            continue
        out.append(unit.path + "\n")
        for func in unit.funcs:
            out.append(f"\t{func.rel_name}\n")
        out.append("\n")
    return "".join(out)
