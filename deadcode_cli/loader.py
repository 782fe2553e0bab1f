"""Program loading: link parsed modules into a per-variant program graph.

The same source is linked once per build variant. The *default* variant sees
only non-test modules and starts from the program's entry points; the *test*
variant (``include_tests``) sees every module and starts from the tests.
A declaration therefore yields one graph node per variant, all sharing its
source position.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import read_pyproject
from .errors import ProgramLoadError
from .models import ClassInfo, GraphNode, Position, ProgramModel
from .parser import (
    INIT_KEY,
    MODULE_SCOPE,
    SCRIPT_KEY,
    Body,
    Chain,
    ModuleFacts,
    PythonProjectParser,
    module_name_for,
)

logger = logging.getLogger(__name__)

DEFAULT_VARIANT = ""
TEST_VARIANT = "test"

TESTRUNNER_KEY = "<testrunner>"
ENTRYPOINTS_KEY = "<entrypoints>"

MAX_ALIAS_DEPTH = 10

# Bases that say nothing about who calls the subclass' methods.
NEUTRAL_BASES = frozenset({
    "object", "ABC", "Protocol", "Generic", "NamedTuple", "TypedDict",
    "Enum", "IntEnum", "StrEnum", "Flag", "IntFlag",
    "Exception", "BaseException",
})

TEST_FUNCTION_NAMES = frozenset({
    "setup_module", "teardown_module", "setup_function", "teardown_function",
    "setup", "teardown",
})
TEST_METHOD_NAMES = frozenset({
    "setUp", "tearDown", "setUpClass", "tearDownClass", "asyncSetUp", "asyncTearDown",
    "setup_method", "teardown_method", "setup_class", "teardown_class",
})

# ("func" | "class" | "module", module name, key)
Target = Tuple[str, str, str]


def _variant_suffix(variant: str) -> str:
    return f" [{variant}]" if variant else ""


def is_test_class(name: str, bases: Sequence[Chain]) -> bool:
    if name.startswith("Test"):
        return True
    return any(chain[-1].endswith("TestCase") for chain in bases)


class ProgramLinker:
    """Resolve names and build graph nodes for one build variant."""

    def __init__(self, modules: Iterable[ModuleFacts], variant: str, program: ProgramModel) -> None:
        self.modules: Dict[str, ModuleFacts] = {m.name: m for m in modules}
        self.variant = variant
        self.program = program
        self._suffix = _variant_suffix(variant)
        self._bases_cache: Dict[Tuple[str, str], List[Target]] = {}

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def node_id(self, module: str, key: str) -> str:
        return f"{module}.{key}{self._suffix}"

    def class_id(self, module: str, key: str) -> str:
        return f"class:{module}.{key}{self._suffix}"

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------

    def resolve_path(self, dotted: str, depth: int = 0) -> List[Target]:
        """Resolve an absolute dotted path such as ``pkg.mod.Class.method``."""
        parts = dotted.split(".")
        for i in range(len(parts), 0, -1):
            head = ".".join(parts[:i])
            if head in self.modules:
                targets: List[Target] = [("module", head, "")]
                for attr in parts[i:]:
                    targets = self._members(targets, attr, depth)
                    if not targets:
                        return []
                return targets
        return []

    def _expand(self, module: str, bindings, depth: int) -> List[Target]:
        out: List[Target] = []
        for kind, key in bindings:
            if kind == "alias":
                if depth < MAX_ALIAS_DEPTH:
                    out.extend(self.resolve_path(key, depth + 1))
            else:
                out.append((kind, module, key))
        return out

    def _members(self, targets: List[Target], attr: str, depth: int) -> List[Target]:
        out: List[Target] = []
        for kind, module, key in targets:
            if kind == "module":
                out.extend(self.module_member(module, attr, depth))
            elif kind == "class":
                out.extend(self.class_member(module, key, attr, depth, set()))
        return out

    def module_member(self, module: str, name: str, depth: int = 0) -> List[Target]:
        facts = self.modules.get(module)
        if facts is None:
            return []
        scope = facts.scopes[MODULE_SCOPE]
        if name in scope.names:
            return self._expand(module, scope.names[name], depth)
        submodule = f"{module}.{name}"
        if submodule in self.modules:
            return [("module", submodule, "")]
        if depth < MAX_ALIAS_DEPTH:
            for star in scope.star_imports:
                found = self.module_member(star, name, depth + 1)
                if found:
                    return found
        return []

    def class_member(self, module: str, key: str, name: str, depth: int, seen: Set[Tuple[str, str]]) -> List[Target]:
        if (module, key) in seen:
            return []
        seen.add((module, key))
        facts = self.modules[module]
        scope = facts.scopes[facts.classes[key].scope_id]
        if name in scope.names:
            return self._expand(module, scope.names[name], depth)
        for _, base_module, base_key in self.class_bases(module, key):
            found = self.class_member(base_module, base_key, name, depth, seen)
            if found:
                return found
        return []

    def class_bases(self, module: str, key: str) -> List[Target]:
        cached = self._bases_cache.get((module, key))
        if cached is not None:
            return cached
        self._bases_cache[(module, key)] = []
        cls = self.modules[module].classes[key]
        bases: List[Target] = []
        for chain in cls.bases:
            bases.extend(t for t in self._base_targets(module, key, chain) if t[0] == "class")
        self._bases_cache[(module, key)] = bases
        return bases

    def _base_targets(self, module: str, key: str, chain: Chain) -> List[Target]:
        """Resolve a base class expression, never to the class being defined.

        ``class Thread(Thread)`` binds the name only after the base is evaluated.
        """
        cls = self.modules[module].classes[key]
        targets, _, _ = self.resolve_chain(module, cls.scope, chain)
        return [t for t in targets if t != ("class", module, key)]

    def bindings(self, module: str, scope_id: str, name: str) -> List[Tuple[str, str]]:
        """Bindings of *name* as seen from *scope_id*, innermost scope first."""
        facts = self.modules[module]
        sid: Optional[str] = scope_id
        first = True
        while sid is not None and sid != MODULE_SCOPE:
            scope = facts.scopes[sid]
            # class scopes are only visible to code directly in the class body
            if (first or not scope.is_class) and name in scope.names:
                return scope.names[name]
            first = False
            sid = scope.parent
        return facts.scopes[MODULE_SCOPE].names.get(name, [])

    def lookup(self, module: str, scope_id: str, name: str) -> List[Target]:
        found = self.bindings(module, scope_id, name)
        if found:
            return self._expand(module, found, 0)
        return self.module_member(module, name)

    def _has_unresolved_alias(self, module: str, scope_id: str, name: str) -> bool:
        return any(
            kind == "alias" and not self.resolve_path(key)
            for kind, key in self.bindings(module, scope_id, name)
        )

    def resolve_chain(self, module: str, scope_id: str, chain: Chain) -> Tuple[List[Target], Set[Target], List[str]]:
        """Resolve a dotted reference.

        Returns the final targets, every class passed through on the way, and
        the attribute names left unresolved.
        """
        targets = self.lookup(module, scope_id, chain[0])
        touched: Set[Target] = {t for t in targets if t[0] == "class"}
        for i, attr in enumerate(chain[1:], start=1):
            if not targets:
                return [], touched, list(chain[i:])
            found = self._members(targets, attr, 0)
            if not found:
                return targets, touched, list(chain[i:])
            targets = found
            touched.update(t for t in targets if t[0] == "class")
        return targets, touched, []

    # ------------------------------------------------------------------
    # Graph construction
    # ------------------------------------------------------------------

    def link(self) -> None:
        for facts in self.modules.values():
            self._add_nodes(facts)
        for facts in self.modules.values():
            self._add_classes(facts)
        for facts in self.modules.values():
            self._link_module(facts)

    def _synthetic_node(self, facts: ModuleFacts, key: str, reason: str) -> GraphNode:
        return self.program.add_node(GraphNode(
            node_id=self.node_id(facts.name, key),
            name=f"{facts.name}.{key}",
            rel_name=key,
            unit=facts.name,
            pos=Position(facts.filename),
            variant=self.variant,
            synthetic=reason,
        ))

    def _add_nodes(self, facts: ModuleFacts) -> None:
        self._synthetic_node(facts, INIT_KEY, "module initializer")
        if facts.script is not None:
            self._synthetic_node(facts, SCRIPT_KEY, "__main__ block")
        for fn in facts.functions.values():
            parent = None
            if fn.parent is not None:
                parent = self.node_id(facts.name, fn.parent)
            self.program.add_node(GraphNode(
                node_id=self.node_id(facts.name, fn.key),
                name=f"{facts.name}.{fn.qualname}",
                rel_name=fn.qualname,
                unit=facts.name,
                pos=Position(facts.filename, fn.line, fn.column),
                variant=self.variant,
                parent=parent,
                origin=self.node_id(facts.name, fn.origin) if fn.origin else None,
            ))

    def _add_classes(self, facts: ModuleFacts) -> None:
        for cls in facts.classes.values():
            methods: Dict[str, List[str]] = {}
            for name, bindings in facts.scopes[cls.scope_id].names.items():
                ids = [self.node_id(facts.name, key) for kind, key in bindings if kind == "func"]
                if ids:
                    methods[name] = ids
            external = False
            for chain in cls.bases:
                if chain[-1] in NEUTRAL_BASES:
                    continue
                targets = self._base_targets(facts.name, cls.key, chain)
                if not targets or self._has_unresolved_alias(facts.name, cls.scope, chain[0]):
                    external = True
            info = ClassInfo(
                class_id=self.class_id(facts.name, cls.key),
                name=f"{facts.name}.{cls.qualname}",
                variant=self.variant,
                bases=[self.class_id(m, k) for _, m, k in self.class_bases(facts.name, cls.key)],
                methods=methods,
                external_base=external,
            )
            self.program.classes[info.class_id] = info

    def _link_module(self, facts: ModuleFacts) -> None:
        self._link_body(facts, self.node_id(facts.name, INIT_KEY), facts.init)
        if facts.script is not None:
            self._link_body(facts, self.node_id(facts.name, SCRIPT_KEY), facts.script)
        for fn in facts.functions.values():
            self._link_body(facts, self.node_id(facts.name, fn.key), fn.body)

    def _link_body(self, facts: ModuleFacts, node_id: str, body: Body) -> None:
        node = self.program.nodes[node_id]
        for scope_id, chain in body.chains:
            targets, touched, leftover = self.resolve_chain(facts.name, scope_id, chain)
            self._add_targets(node, targets)
            for _, module, key in touched:
                node.classes.add(self.class_id(module, key))
            node.selectors.update(leftover)
        node.selectors.update(body.selectors)
        for key in body.captured:
            node.refs.add(self.node_id(facts.name, key))
        for imported in body.imports:
            if imported in self.modules:
                node.refs.add(self.node_id(imported, INIT_KEY))

    def _add_targets(self, node: GraphNode, targets: Iterable[Target]) -> None:
        for kind, module, key in targets:
            if kind == "func":
                node.refs.add(self.node_id(module, key))
            elif kind == "class":
                node.classes.add(self.class_id(module, key))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def main_roots(self) -> List[str]:
        roots: List[str] = []
        for facts in self.modules.values():
            if not facts.is_main:
                continue
            roots.append(self.node_id(facts.name, INIT_KEY))
            if facts.script is not None:
                roots.append(self.node_id(facts.name, SCRIPT_KEY))
        return roots

    def entry_point_roots(self, specs: Sequence[str]) -> List[str]:
        """Roots for ``module:attr`` entry point specifications."""
        if not specs:
            return []
        node = GraphNode(
            node_id=f"{ENTRYPOINTS_KEY}{self._suffix}",
            name=ENTRYPOINTS_KEY,
            rel_name=ENTRYPOINTS_KEY,
            unit="",
            pos=Position(""),
            variant=self.variant,
            synthetic="entry points",
        )
        for spec in specs:
            module, _, attr = spec.partition(":")
            module = module.strip()
            attr = attr.split("[")[0].strip()
            if module not in self.modules:
                logger.warning("entry point %r: module %s not found", spec, module)
                continue
            node.refs.add(self.node_id(module, INIT_KEY))
            if attr:
                targets = self.resolve_path(f"{module}.{attr}")
                if not targets:
                    logger.warning("entry point %r: %s not found in %s", spec, attr, module)
                self._add_targets(node, targets)
        if not node.refs:
            return []
        self.program.add_node(node)
        return [node.node_id]

    def test_roots(self) -> List[str]:
        roots: List[str] = []
        for facts in self.modules.values():
            if not facts.is_test:
                continue
            roots.append(self.node_id(facts.name, INIT_KEY))
            runner = self._synthetic_node(facts, TESTRUNNER_KEY, "test runner")
            scope = facts.scopes[MODULE_SCOPE]
            for name, bindings in scope.names.items():
                for kind, key in bindings:
                    if kind == "func" and (
                        name.startswith("test") or name.startswith("pytest_") or name in TEST_FUNCTION_NAMES
                    ):
                        runner.refs.add(self.node_id(facts.name, key))
                    elif kind == "class":
                        cls = facts.classes[key]
                        if not is_test_class(name, cls.bases):
                            continue
                        runner.classes.add(self.class_id(facts.name, key))
                        for mname, mbindings in facts.scopes[cls.scope_id].names.items():
                            if not (mname.startswith("test") or mname in TEST_METHOD_NAMES):
                                continue
                            for mkind, mkey in mbindings:
                                if mkind == "func":
                                    runner.refs.add(self.node_id(facts.name, mkey))
            roots.append(runner.node_id)
        return roots


# ===================================================================
# Project-level helpers
# ===================================================================

def _project_dir(paths: Sequence[Path]) -> Optional[Path]:
    if not paths:
        return None
    first = paths[0]
    return first if first.is_dir() else first.parent


def entry_point_specs(pyproject: Dict) -> List[str]:
    """Collect ``module:attr`` values of scripts and entry points."""
    specs: List[str] = []
    project = pyproject.get("project", {}) or {}
    for table in ("scripts", "gui-scripts"):
        specs.extend(str(v) for v in (project.get(table) or {}).values())
    for group in (project.get("entry-points") or {}).values():
        if isinstance(group, dict):
            specs.extend(str(v) for v in group.values())
    poetry = (pyproject.get("tool", {}) or {}).get("poetry", {}) or {}
    for value in (poetry.get("scripts") or {}).values():
        if isinstance(value, dict):
            value = value.get("reference", "")
        if value:
            specs.append(str(value))
    return specs


def root_module_path(paths: Sequence[Path], modules: Sequence[ModuleFacts], pyproject: Dict) -> Optional[str]:
    """Name of the root package the first path belongs to, if it has one."""
    if not paths:
        return None
    first = paths[0]
    if first.is_dir() and (first / "__init__.py").exists():
        return module_name_for(first / "__init__.py")[0]
    name = (pyproject.get("project", {}) or {}).get("name")
    if not name:
        name = ((pyproject.get("tool", {}) or {}).get("poetry", {}) or {}).get("name")
    if not name:
        return None
    normalized = re.sub(r"[-_.]+", "_", str(name)).lower()
    tops = {m.name.split(".")[0] for m in modules if m.is_package}
    return normalized if normalized in tops else None


def load_program(
    paths: Sequence[Path],
    include_tests: bool = False,
    tags: Iterable[str] = (),
) -> ProgramModel:
    """Parse and link the program rooted at *paths*.

    Raises :class:`ProgramLoadError` when any module fails to parse or when
    nothing was found to analyse.
    """
    paths = [Path(p) for p in paths]
    parser = PythonProjectParser(paths, include_tests=include_tests, tags=tags)
    modules = parser.parse_project()
    if parser.errors:
        raise ProgramLoadError("modules contain errors", parser.errors)
    if not modules:
        raise ProgramLoadError("no modules")

    project_dir = _project_dir(paths)
    pyproject = read_pyproject(project_dir) if project_dir else {}

    program = ProgramModel(
        sources={m.filename: m.source for m in modules},
        module_path=root_module_path(paths, modules, pyproject),
    )

    default = ProgramLinker([m for m in modules if not m.is_test], DEFAULT_VARIANT, program)
    default.link()
    program.roots.extend(default.main_roots())
    program.roots.extend(default.entry_point_roots(entry_point_specs(pyproject)))

    if include_tests:
        tests = ProgramLinker(modules, TEST_VARIANT, program)
        tests.link()
        program.roots.extend(tests.test_roots())

    logger.debug(
        "loaded %d modules: %d nodes, %d classes, %d roots",
        len(modules), len(program.nodes), len(program.classes), len(program.roots),
    )
    return program
