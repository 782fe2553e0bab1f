"""Rapid type analysis over the linked program graph."""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, List, Set, Tuple

from .models import ProgramModel

logger = logging.getLogger(__name__)


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


class ReachabilityEngine:
    """Worklist propagation of reachable functions, live classes and selectors.

    A function is reachable when a reachable body references it directly, or
    when it is a method of a live class and either its name is used as an
    attribute somewhere reachable in the same variant, it is a dunder, or the
    class derives from something outside the program.
    """

    def __init__(self, program: ProgramModel):
        self.program = program
        self.reachable: Set[str] = set()
        self.live_classes: Set[str] = set()
        self.selectors: Dict[str, Set[str]] = {}
        # (variant, method name) -> method node ids of live classes not yet reached
        self._pending: Dict[Tuple[str, str], List[str]] = {}
        self._external: Dict[str, bool] = {}
        self._queue: deque = deque()

    def run(self, roots: Iterable[str]) -> Set[str]:
        for root in roots:
            self._reach(root)
        while self._queue:
            node = self.program.nodes[self._queue.popleft()]
            for ref in node.refs:
                self._reach(ref)
            for class_id in node.classes:
                self._make_live(class_id)
            for name in node.selectors:
                self._add_selector(node.variant, name)
        logger.debug(
            "reachability: %d functions, %d live classes",
            len(self.reachable), len(self.live_classes),
        )
        return self.reachable

    def _reach(self, node_id: str) -> None:
        if node_id in self.reachable or node_id not in self.program.nodes:
            return
        self.reachable.add(node_id)
        self._queue.append(node_id)

    def _has_external_base(self, class_id: str, seen: Set[str] = None) -> bool:
        if class_id in self._external:
            return self._external[class_id]
        seen = seen or set()
        if class_id in seen:
            return False
        seen.add(class_id)
        info = self.program.classes.get(class_id)
        result = False
        if info is not None:
            result = info.external_base or any(self._has_external_base(b, seen) for b in info.bases)
        self._external[class_id] = result
        return result

    def _make_live(self, class_id: str) -> None:
        stack = [class_id]
        while stack:
            current = stack.pop()
            if current in self.live_classes:
                continue
            info = self.program.classes.get(current)
            if info is None:
                continue
            self.live_classes.add(current)
            stack.extend(info.bases)
            external = self._has_external_base(current)
            known = self.selectors.get(info.variant, set())
            for name, method_ids in info.methods.items():
                if external or _is_dunder(name) or name in known:
                    for method_id in method_ids:
                        self._reach(method_id)
                else:
                    self._pending.setdefault((info.variant, name), []).extend(method_ids)

    def _add_selector(self, variant: str, name: str) -> None:
        known = self.selectors.setdefault(variant, set())
        if name in known:
            return
        known.add(name)
        for method_id in self._pending.pop((variant, name), []):
            self._reach(method_id)


def compute_reachable(program: ProgramModel, roots: Iterable[str]) -> Set[str]:
    """Return the ids of all nodes reachable from *roots*."""
    return ReachabilityEngine(program).run(roots)
