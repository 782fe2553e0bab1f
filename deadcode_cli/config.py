"""Analysis options and the ``[tool.deadcode]`` table of pyproject.toml."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import toml

from .errors import UsageError

logger = logging.getLogger(__name__)

PYPROJECT = "pyproject.toml"
MODULE_FILTER = "<module>"

_BOOL_KEYS = ("test", "generated")
_STR_KEYS = ("tags", "filter")


@dataclass(frozen=True)
class AnalysisConfig:
    include_tests: bool = False
    tags: Tuple[str, ...] = ()
    filter: str = MODULE_FILTER
    include_generated: bool = False

    def override(self, **values: Any) -> "AnalysisConfig":
        """Return a copy with every non-``None`` value replaced."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})


def parse_tags(value: str) -> Tuple[str, ...]:
    """Split a comma- or space-separated build tag list."""
    return tuple(tag for tag in re.split(r"[,\s]+", value or "") if tag)


def read_pyproject(directory: Path) -> Dict[str, Any]:
    """Load ``pyproject.toml`` from *directory*; missing or unreadable yields ``{}``."""
    path = Path(directory) / PYPROJECT
    if not path.is_file():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("%s: %s", path, exc)
        return {}


def load_config(directory: Optional[Path]) -> AnalysisConfig:
    """Build the configuration declared in ``[tool.deadcode]``."""
    if directory is None:
        return AnalysisConfig()
    table = read_pyproject(directory).get("tool", {}).get("deadcode", {})
    if not table:
        return AnalysisConfig()

    for key in _BOOL_KEYS:
        if key in table and not isinstance(table[key], bool):
            raise UsageError(f"[tool.deadcode] {key}: expected a boolean, got {table[key]!r}")
    for key in _STR_KEYS:
        if key in table and not isinstance(table[key], str):
            raise UsageError(f"[tool.deadcode] {key}: expected a string, got {table[key]!r}")
    unknown = set(table) - set(_BOOL_KEYS) - set(_STR_KEYS)
    if unknown:
        logger.warning("[tool.deadcode]: ignoring unknown keys %s", ", ".join(sorted(unknown)))

    return AnalysisConfig(
        include_tests=table.get("test", False),
        tags=parse_tags(table.get("tags", "")),
        filter=table.get("filter", MODULE_FILTER),
        include_generated=table.get("generated", False),
    )
