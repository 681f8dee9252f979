"""
Static field dependency graph.

Edges map a source field key to the keys that copy its raw value. Two legacy
tables described these relationships in different key dialects; building a
graph canonicalizes every key, so both tables merge into one.

The graph is validated once, at construction: a cycle raises
``DependencyCycleError`` instead of recursing forever at runtime.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .exceptions import DependencyCycleError
from .field_ids import to_canonical


Edges = Mapping[str, Sequence[str]]


class DependencyGraph:
    """
    Immutable directed acyclic graph over canonical field keys.

    Example:
        >>> graph = DependencyGraph({"SchC_Line31": ["Sch1:Line3"], "Sch1.Line3": ["1040_Line8"]})
        >>> graph.walk("SchC.Line31")
        ['Sch1.Line3', '1040.Line8']
    """

    def __init__(self, *edge_tables: Edges):
        merged: Dict[str, List[str]] = {}
        for table in edge_tables:
            for source, targets in table.items():
                key = to_canonical(source)
                existing = merged.setdefault(key, [])
                for target in targets:
                    canonical_target = to_canonical(target)
                    if canonical_target not in existing:
                        existing.append(canonical_target)

        self._edges: Dict[str, Tuple[str, ...]] = {
            source: tuple(targets) for source, targets in merged.items()
        }
        self._check_acyclic()

    def _check_acyclic(self) -> None:
        visiting: List[str] = []
        done = set()

        def visit(node: str) -> None:
            if node in done:
                return
            if node in visiting:
                start = visiting.index(node)
                raise DependencyCycleError(visiting[start:] + [node])
            visiting.append(node)
            for target in self._edges.get(node, ()):
                visit(target)
            visiting.pop()
            done.add(node)

        for source in self._edges:
            visit(source)

    @property
    def edges(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self._edges)

    def sources(self) -> List[str]:
        return list(self._edges)

    def targets(self, key: str) -> Tuple[str, ...]:
        """Direct dependents of a key (any dialect accepted)."""
        return self._edges.get(to_canonical(key), ())

    def walk(self, key: str) -> List[str]:
        """
        Depth-first list of every transitive dependent of ``key``.

        Keys reachable by two paths appear twice, once per path.
        """
        order: List[str] = []
        for target in self.targets(key):
            order.append(target)
            order.extend(self.walk(target))
        return order

    def cascade(
        self,
        key: str,
        value: Any,
        apply: Callable[[str, Any], Optional[bool]],
    ) -> List[str]:
        """
        Push ``value`` to every transitive dependent of ``key``.

        ``apply(target_key, value)`` is called in walk order. The keys it
        was called with are returned.
        """
        visited = []
        for target in self.walk(key):
            apply(target, value)
            visited.append(target)
        return visited

    def __contains__(self, key: str) -> bool:
        return to_canonical(key) in self._edges

    def __len__(self) -> int:
        return len(self._edges)


# Merged from the two legacy mapping tables (form-level and line-level keys).
_FORM_LEVEL_EDGES = {
    "W2.box1": ["1040.line1z"],
    "SchC.netProfit": ["1040.line3", "SchSE.seTax", "1040.totalIncome"],
}

_LINE_LEVEL_EDGES = {
    "SchC_Line31": ["Sch1_Line3"],
    "Sch1_Line3": ["1040_Line8"],
}

DEFAULT_DEPENDENCY_GRAPH = DependencyGraph(_FORM_LEVEL_EDGES, _LINE_LEVEL_EDGES)


def build_graph(edge_tables: Iterable[Edges]) -> DependencyGraph:
    """Build a graph from several edge tables."""
    return DependencyGraph(*edge_tables)
