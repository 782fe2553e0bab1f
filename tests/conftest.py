"""Pytest configuration and fixtures for deadcode tests."""

import shutil
import tempfile
import textwrap
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from deadcode_cli.models import GraphNode, Position, ProgramModel


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def make_project(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: source}`` files under a fresh directory."""

    def _make(files: Dict[str, str], name: str = "proj") -> Path:
        root = temp_dir / name
        for rel, source in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(source).lstrip("\n"), encoding="utf-8")
        return root

    return _make


def make_node(
    node_id: str,
    unit: str = "m",
    filename: str = "m.py",
    line: int = 1,
    column: int = 1,
    **kwargs,
) -> GraphNode:
    """Build a graph node with a position derived from the arguments."""
    rel_name = kwargs.pop("rel_name", node_id.split(" ")[0].rpartition(".")[2])
    return GraphNode(
        node_id=node_id,
        name=kwargs.pop("name", f"{unit}.{rel_name}"),
        rel_name=rel_name,
        unit=unit,
        pos=Position(filename, line, column),
        **kwargs,
    )


def make_program(*nodes: GraphNode, roots=(), module_path=None, sources=None) -> ProgramModel:
    program = ProgramModel(roots=list(roots), module_path=module_path, sources=dict(sources or {}))
    for node in nodes:
        program.add_node(node)
    return program
