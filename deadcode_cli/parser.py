"""Python source parser producing per-module declaration and reference facts.

Each module is parsed once with the built-in ``ast`` module. The parser does
not resolve anything across modules; it records, for every executable body
(module initializer, ``__main__`` block, function, lambda), the dotted names
it references, the attribute names it uses on receivers of unknown type, the
modules it imports and the functions whose address it takes. Linking those
facts into a program graph is the job of :mod:`deadcode_cli.loader`.
"""

from __future__ import annotations

import ast
import logging
import tokenize
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

SKIP_DIRS: Set[str] = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".nox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs",
}

TEST_DIRS: Set[str] = {"test", "tests"}

# Decorators that leave the function as a plain attribute of its scope.
# Any other decorator receives the function object and may register it.
TRANSPARENT_DECORATORS = frozenset({
    "staticmethod", "classmethod", "property", "cached_property",
    "abstractmethod", "abstractproperty", "overload", "override", "final",
    "wraps", "lru_cache", "cache", "contextmanager", "asynccontextmanager",
    "no_type_check", "deprecated",
})
ACCESSOR_DECORATORS = frozenset({"setter", "getter", "deleter"})
GUARD_NAMES = frozenset({"TYPE_CHECKING"})
DYNAMIC_ATTR_FUNCS = frozenset({"getattr", "setattr", "hasattr", "delattr"})

MODULE_SCOPE = ""
INIT_KEY = "<module>"
SCRIPT_KEY = "<main>"

Chain = Tuple[str, ...]
Binding = Tuple[str, str]


@dataclass
class Body:
    """References made by one executable body."""

    chains: List[Tuple[str, Chain]] = field(default_factory=list)
    selectors: Set[str] = field(default_factory=set)
    imports: List[str] = field(default_factory=list)
    captured: Set[str] = field(default_factory=set)


@dataclass
class Scope:
    parent: Optional[str] = None
    is_class: bool = False
    names: Dict[str, List[Binding]] = field(default_factory=dict)
    star_imports: List[str] = field(default_factory=list)

    def bind(self, name: str, kind: str, key: str) -> None:
        self.names.setdefault(name, []).append((kind, key))


@dataclass
class FunctionFacts:
    key: str
    qualname: str
    line: int
    column: int
    parent: Optional[str] = None
    owner: Optional[str] = None
    overload: bool = False
    origin: Optional[str] = None
    body: Body = field(default_factory=Body)

    @property
    def scope_id(self) -> str:
        return f"def:{self.key}"


@dataclass
class ClassFacts:
    key: str
    qualname: str
    line: int
    column: int
    scope: str = MODULE_SCOPE
    bases: List[Chain] = field(default_factory=list)

    @property
    def scope_id(self) -> str:
        return f"class:{self.key}"


@dataclass
class ModuleFacts:
    name: str
    filename: str
    source: str = ""
    is_package: bool = False
    is_test: bool = False
    is_main: bool = False
    functions: Dict[str, FunctionFacts] = field(default_factory=dict)
    classes: Dict[str, ClassFacts] = field(default_factory=dict)
    scopes: Dict[str, Scope] = field(default_factory=lambda: {MODULE_SCOPE: Scope()})
    init: Body = field(default_factory=Body)
    script: Optional[Body] = None

    @property
    def package(self) -> str:
        if self.is_package:
            return self.name
        return self.name.rpartition(".")[0]


# ===================================================================
# File discovery helpers
# ===================================================================

def is_test_file(path: Path, root: Optional[Path] = None) -> bool:
    name = path.name
    if name == "conftest.py" or name.startswith("test_") or name.endswith("_test.py"):
        return True
    parent = path.parent
    if root is not None:
        base = root if root.is_dir() else root.parent
        try:
            parent = parent.relative_to(base)
        except ValueError:
            pass
    return any(part in TEST_DIRS for part in parent.parts)


def module_name_for(path: Path) -> Tuple[str, bool]:
    """Return the dotted module name of *path* and whether it is a package."""
    resolved = path.resolve()
    is_package = resolved.name == "__init__.py"
    parts: List[str] = [] if is_package else [resolved.stem]
    directory = resolved.parent
    while (directory / "__init__.py").exists() and directory.name:
        parts.insert(0, directory.name)
        directory = directory.parent
    return ".".join(parts), is_package


def _skipped(path: Path, root: Path) -> bool:
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        parts = path.parts
    return any(p in SKIP_DIRS or p.endswith(".egg-info") for p in parts[:-1])


def discover_files(paths: Iterable[Path]) -> List[Tuple[Path, Path]]:
    """Return ``(root, file)`` pairs for every Python file under *paths*."""
    found: List[Tuple[Path, Path]] = []
    for root in paths:
        if root.is_file():
            if root.suffix == ".py":
                found.append((root, root))
            continue
        for fp in sorted(root.rglob("*.py")):
            if _skipped(fp, root):
                continue
            found.append((root, fp))
    return found


# ===================================================================
# Project parser
# ===================================================================

class PythonProjectParser:
    """Parse every module of a project into :class:`ModuleFacts`."""

    def __init__(
        self,
        paths: Iterable[Path],
        include_tests: bool = False,
        tags: Iterable[str] = (),
    ) -> None:
        self.paths = [Path(p) for p in paths]
        self.include_tests = include_tests
        self.tags = frozenset(tags)
        self.errors: List[str] = []

    def parse_project(self) -> List[ModuleFacts]:
        modules: List[ModuleFacts] = []
        seen: Dict[str, str] = {}
        for root, fp in discover_files(self.paths):
            is_test = is_test_file(fp, root)
            if is_test and not self.include_tests:
                continue
            name, is_package = module_name_for(fp)
            if name in seen:
                logger.warning("duplicate module %s in %s (already loaded from %s); skipped", name, fp, seen[name])
                continue
            facts = self.parse_file(fp, name, is_package=is_package, is_test=is_test)
            if facts is not None:
                seen[name] = str(fp)
                modules.append(facts)
        logger.debug("parsed %d modules (%d errors)", len(modules), len(self.errors))
        return modules

    def parse_file(
        self,
        file_path: Path,
        module_name: str,
        is_package: bool = False,
        is_test: bool = False,
        source: Optional[str] = None,
    ) -> Optional[ModuleFacts]:
        filename = str(file_path)
        try:
            if source is None:
                with tokenize.open(file_path) as fh:
                    source = fh.read()
            tree = ast.parse(source, filename=filename)
        except SyntaxError as exc:
            self._error(f"{filename}:{exc.lineno or 0}:{exc.offset or 0}: {exc.msg}")
            return None
        except (UnicodeDecodeError, OSError) as exc:
            self._error(f"{filename}: {exc}")
            return None

        module = ModuleFacts(
            name=module_name,
            filename=filename,
            source=source,
            is_package=is_package,
            is_test=is_test,
            is_main=module_name == "__main__" or module_name.endswith(".__main__"),
        )
        visitor = _DeclarationVisitor(module, self.tags)
        for stmt in tree.body:
            visitor.visit(stmt)
        _link_overloads(module)
        return module

    def _error(self, message: str) -> None:
        logger.error("%s", message)
        self.errors.append(message)


def _link_overloads(module: ModuleFacts) -> None:
    """Point ``@overload`` stubs at the implementation sharing their name."""
    for scope in module.scopes.values():
        for bindings in scope.names.values():
            funcs = [module.functions[key] for kind, key in bindings if kind == "func"]
            impls = [f for f in funcs if not f.overload]
            if not impls:
                continue
            for fn in funcs:
                if fn.overload:
                    fn.origin = impls[-1].key


# ===================================================================
# AST visitor
# ===================================================================

def _chain(expr: ast.AST) -> Optional[Chain]:
    if isinstance(expr, ast.Name):
        return (expr.id,)
    if isinstance(expr, ast.Attribute):
        inner = _chain(expr.value)
        if inner is not None:
            return inner + (expr.attr,)
    return None


def _decorator_name(expr: ast.AST) -> Optional[str]:
    if isinstance(expr, ast.Call):
        expr = expr.func
    chain = _chain(expr)
    return chain[-1] if chain else None


def _guard_name(test: ast.AST) -> Optional[str]:
    chain = _chain(test)
    return chain[-1] if chain else None


def _is_main_guard(test: ast.AST) -> bool:
    if not isinstance(test, ast.Compare) or len(test.ops) != 1:
        return False
    if not isinstance(test.ops[0], ast.Eq):
        return False
    sides = [test.left, test.comparators[0]]
    has_name = any(isinstance(s, ast.Name) and s.id == "__name__" for s in sides)
    has_main = any(isinstance(s, ast.Constant) and s.value == "__main__" for s in sides)
    return has_name and has_main


class _DeclarationVisitor(ast.NodeVisitor):
    """Walks one module, attributing references to the body that executes them."""

    def __init__(self, module: ModuleFacts, tags: frozenset) -> None:
        self.module = module
        self.tags = tags
        self.body: Body = module.init
        self.scope: str = MODULE_SCOPE
        self.func: Optional[str] = None
        self.cls: Optional[str] = None
        self.prefix: str = ""
        self._used_keys: Set[str] = set()

    # --- state helpers ---
    def _push(self, body: Body, scope: str, func: Optional[str], cls: Optional[str], prefix: str):
        saved = (self.body, self.scope, self.func, self.cls, self.prefix)
        self.body, self.scope, self.func, self.cls, self.prefix = body, scope, func, cls, prefix
        return saved

    def _pop(self, saved) -> None:
        self.body, self.scope, self.func, self.cls, self.prefix = saved

    def _unique(self, qualname: str) -> str:
        key = qualname
        n = 1
        while key in self._used_keys:
            n += 1
            key = f"{qualname}#{n}"
        self._used_keys.add(key)
        return key

    def _current_scope(self) -> Scope:
        return self.module.scopes[self.scope]

    def _visit_defaults(self, args: ast.arguments) -> None:
        for default in list(args.defaults) + [d for d in args.kw_defaults if d is not None]:
            self.visit(default)

    # --- definitions ---
    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def _visit_function(self, node) -> None:
        transparent = True
        overload = False
        for dec in node.decorator_list:
            name = _decorator_name(dec)
            if name in ACCESSOR_DECORATORS:
                continue
            self.visit(dec)
            if name == "overload":
                overload = True
            if name not in TRANSPARENT_DECORATORS:
                transparent = False
        self._visit_defaults(node.args)

        qualname = self.prefix + node.name
        facts = FunctionFacts(
            key=self._unique(qualname),
            qualname=qualname,
            line=node.lineno,
            column=node.col_offset + 1,
            parent=self.func,
            owner=self.cls,
            overload=overload,
        )
        self.module.functions[facts.key] = facts
        self._current_scope().bind(node.name, "func", facts.key)
        if not transparent:
            self.body.captured.add(facts.key)

        self.module.scopes[facts.scope_id] = Scope(parent=self.scope)
        saved = self._push(facts.body, facts.scope_id, facts.key, None, qualname + ".<locals>.")
        for stmt in node.body:
            self.visit(stmt)
        self._pop(saved)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_defaults(node.args)
        qualname = self.prefix + "<lambda>"
        facts = FunctionFacts(
            key=self._unique(qualname),
            qualname=qualname,
            line=node.lineno,
            column=node.col_offset + 1,
            parent=self.func or INIT_KEY,
        )
        self.module.functions[facts.key] = facts
        self.body.captured.add(facts.key)

        self.module.scopes[facts.scope_id] = Scope(parent=self.scope)
        saved = self._push(facts.body, facts.scope_id, facts.key, None, qualname + ".<locals>.")
        self.visit(node.body)
        self._pop(saved)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for dec in node.decorator_list:
            self.visit(dec)
        bases: List[Chain] = []
        for base in node.bases:
            target = base.value if isinstance(base, ast.Subscript) else base
            chain = _chain(target)
            if chain:
                bases.append(chain)
            else:
                self.visit(base)
        for kw in node.keywords:
            self.visit(kw.value)

        qualname = self.prefix + node.name
        facts = ClassFacts(
            key=self._unique(qualname),
            qualname=qualname,
            line=node.lineno,
            column=node.col_offset + 1,
            scope=self.scope,
            bases=bases,
        )
        self.module.classes[facts.key] = facts
        self._current_scope().bind(node.name, "class", facts.key)

        self.module.scopes[facts.scope_id] = Scope(parent=self.scope, is_class=True)
        # Class bodies run in the enclosing body at definition time.
        saved = self._push(self.body, facts.scope_id, self.func, facts.key, qualname + ".")
        for stmt in node.body:
            self.visit(stmt)
        self._pop(saved)

    # --- control flow with build meaning ---
    def visit_If(self, node: ast.If) -> None:
        guard = _guard_name(node.test)
        if guard in GUARD_NAMES:
            if guard in self.tags:
                for stmt in node.body:
                    self.visit(stmt)
            for stmt in node.orelse:
                self.visit(stmt)
            return

        if self.scope == MODULE_SCOPE and _is_main_guard(node.test):
            self.module.is_main = True
            if self.module.script is None:
                self.module.script = Body()
            saved = self._push(self.module.script, self.scope, self.func, self.cls, self.prefix)
            for stmt in node.body:
                self.visit(stmt)
            self._pop(saved)
            for stmt in node.orelse:
                self.visit(stmt)
            return

        self.generic_visit(node)

    # --- imports ---
    def visit_Import(self, node: ast.Import) -> None:
        scope = self._current_scope()
        for alias in node.names:
            parts = alias.name.split(".")
            for i in range(1, len(parts) + 1):
                self.body.imports.append(".".join(parts[:i]))
            if alias.asname:
                scope.bind(alias.asname, "alias", alias.name)
            else:
                scope.bind(parts[0], "alias", parts[0])

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        base = self._absolute_module(node.module, node.level or 0)
        if base is None:
            logger.debug("%s: relative import beyond top-level package", self.module.filename)
            return
        if base:
            parts = base.split(".")
            for i in range(1, len(parts) + 1):
                self.body.imports.append(".".join(parts[:i]))
        scope = self._current_scope()
        for alias in node.names:
            if alias.name == "*":
                scope.star_imports.append(base)
                continue
            target = f"{base}.{alias.name}" if base else alias.name
            self.body.imports.append(target)
            scope.bind(alias.asname or alias.name, "alias", target)

    def _absolute_module(self, module: Optional[str], level: int) -> Optional[str]:
        if level == 0:
            return module or ""
        package = self.module.package.split(".") if self.module.package else []
        drop = level - 1
        if drop > len(package):
            return None
        base = package[: len(package) - drop]
        if module:
            base = base + module.split(".")
        return ".".join(base)

    # --- references ---
    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Load):
            self.body.chains.append((self.scope, (node.id,)))

    def visit_Attribute(self, node: ast.Attribute) -> None:
        chain = _chain(node)
        if chain is not None:
            self.body.chains.append((self.scope, chain))
            return
        self.body.selectors.add(node.attr)
        self.visit(node.value)

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        if isinstance(func, ast.Name) and func.id in DYNAMIC_ATTR_FUNCS and len(node.args) >= 2:
            attr = node.args[1]
            if isinstance(attr, ast.Constant) and isinstance(attr.value, str):
                self.body.selectors.add(attr.value)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        # annotations are not executed references
        self.visit(node.target)
        if node.value is not None:
            self.visit(node.value)
