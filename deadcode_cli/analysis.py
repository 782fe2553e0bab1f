"""Dead code reconciliation: collapse build variants, classify, group and filter.

Everything here is a pure function of the loaded program and the reachable
node set; nothing is read from disk or cached between runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Set

from .config import MODULE_FILTER, AnalysisConfig
from .errors import FilterError, InternalError
from .generated import is_generated
from .models import Declaration, Position, ProgramModel, ReportFunction, ReportUnit


@dataclass
class CanonicalIndex:
    reachable: Set[Position] = field(default_factory=set)
    dead: List[Declaration] = field(default_factory=list)


def canonicalize(program: ProgramModel, reachable: Iterable[str]) -> CanonicalIndex:
    """Reduce per-variant nodes to one declaration per source position.

    A position is reachable when any node at it is reachable, in any
    variant. Each unreachable position yields exactly one declaration.
    """
    index = CanonicalIndex()
    for node_id in reachable:
        node = program.nodes.get(node_id)
        if node is not None and node.pos.is_valid():
            index.reachable.add(node.pos)

    seen: Set[Position] = set()
    for node_id in sorted(program.nodes):
        node = program.nodes[node_id]
        if node.synthetic:
            continue
        if node.origin is not None:
            node = program.nodes.get(node.origin, node)
        if node.parent is not None:
            continue
        pos = node.pos
        if not pos.is_valid() or pos in index.reachable or pos in seen:
            continue
        seen.add(pos)
        index.dead.append(Declaration.from_node(node))
    return index


class DeclarationClassifier:
    """Turns declarations into report entries, flagging generated files."""

    def __init__(self, sources: Dict[str, str], include_generated: bool = False):
        self.sources = sources
        self.include_generated = include_generated
        self._generated: Dict[str, bool] = {}

    def is_generated(self, filename: str) -> bool:
        if filename not in self._generated:
            self._generated[filename] = is_generated(self.sources.get(filename, ""))
        return self._generated[filename]

    def classify(self, decl: Declaration) -> ReportFunction:
        if decl.synthetic:
            raise InternalError(f"unexpected synthetic declaration {decl.name} ({decl.synthetic})")
        if decl.nested:
            raise InternalError(f"unexpected nested declaration {decl.name}")
        return ReportFunction(
            name=decl.name,
            rel_name=decl.rel_name,
            posn=str(decl.pos),
            generated=self.is_generated(decl.pos.filename),
        )

    def keep(self, func: ReportFunction) -> bool:
        return self.include_generated or not func.generated


def compile_filter(pattern: str, module_path: Optional[str] = None) -> Pattern:
    """Compile the unit filter, expanding the ``<module>`` default."""
    if pattern == MODULE_FILTER:
        pattern = "" if module_path is None else "^" + re.escape(module_path) + r"\b"
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise FilterError(f"--filter: {exc}") from exc


def validate_filter(pattern: str) -> None:
    compile_filter(pattern)


def group_by_unit(
    declarations: Iterable[Declaration],
    classifier: DeclarationClassifier,
    unit_filter: Pattern,
) -> List[ReportUnit]:
    by_unit: Dict[str, List[Declaration]] = {}
    for decl in declarations:
        if unit_filter.search(decl.unit):
            by_unit.setdefault(decl.unit, []).append(decl)

    units: List[ReportUnit] = []
    for path in sorted(by_unit):
        decls = sorted(by_unit[path], key=lambda d: (d.pos.filename, d.pos.line))
        funcs = [classifier.classify(d) for d in decls]
        # generated entries are dropped after ordering; the unit itself stays
        units.append(ReportUnit(path=path, funcs=[f for f in funcs if classifier.keep(f)]))
    return units


def find_dead_code(
    program: ProgramModel,
    reachable: Iterable[str],
    config: AnalysisConfig,
) -> List[ReportUnit]:
    """Report every unreachable declaration, grouped by unit."""
    unit_filter = compile_filter(config.filter, program.module_path)
    index = canonicalize(program, reachable)
    classifier = DeclarationClassifier(program.sources, config.include_generated)
    return group_by_unit(index.dead, classifier, unit_filter)
