"""Core data models shared by the loader, reachability engine, and reporter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set


@dataclass(frozen=True, order=True)
class Position:
    """Source position of a declaration; the identity shared by build variants."""

    filename: str
    line: int = 0
    column: int = 0

    def is_valid(self) -> bool:
        return bool(self.filename) and self.line > 0

    def __str__(self) -> str:
        if not self.is_valid():
            return "-"
        if self.column:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.filename}:{self.line}"


@dataclass
class GraphNode:
    node_id: str
    name: str
    rel_name: str
    unit: str
    pos: Position
    variant: str = ""
    synthetic: str = ""
    parent: Optional[str] = None
    origin: Optional[str] = None
    refs: Set[str] = field(default_factory=set)
    classes: Set[str] = field(default_factory=set)
    selectors: Set[str] = field(default_factory=set)


@dataclass
class ClassInfo:
    class_id: str
    name: str
    variant: str = ""
    bases: List[str] = field(default_factory=list)
    methods: Dict[str, List[str]] = field(default_factory=dict)
    external_base: bool = False


@dataclass
class ProgramModel:
    """Everything the analysis needs from one loaded program.

    ``roots`` are the entry node ids. ``sources`` maps each filename to its
    text so generated files can be recognised without touching the disk again.
    """

    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    classes: Dict[str, ClassInfo] = field(default_factory=dict)
    roots: List[str] = field(default_factory=list)
    sources: Dict[str, str] = field(default_factory=dict)
    module_path: Optional[str] = None

    def add_node(self, node: GraphNode) -> GraphNode:
        self.nodes[node.node_id] = node
        return node


@dataclass(frozen=True)
class Declaration:
    name: str
    rel_name: str
    unit: str
    pos: Position
    synthetic: str = ""
    nested: bool = False

    @classmethod
    def from_node(cls, node: GraphNode) -> "Declaration":
        return cls(
            name=node.name,
            rel_name=node.rel_name,
            unit=node.unit,
            pos=node.pos,
            synthetic=node.synthetic,
            nested=node.parent is not None,
        )


@dataclass
class ReportFunction:
    name: str
    rel_name: str
    posn: str
    generated: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "rel_name": self.rel_name,
            "posn": self.posn,
            "generated": self.generated,
        }


@dataclass
class ReportUnit:
    path: str
    funcs: List[ReportFunction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"path": self.path, "funcs": [f.to_dict() for f in self.funcs]}
