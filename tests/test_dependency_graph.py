"""Tests for the static field dependency graph."""

import pytest

from domain.dependency_graph import DEFAULT_DEPENDENCY_GRAPH, DependencyGraph, build_graph
from domain.exceptions import DependencyCycleError


class TestDependencyGraphConstruction:
    """Tests for building graphs."""

    def test_legacy_tables_merge_under_canonical_keys(self):
        """Underscore and colon tables should land on the same dot keys."""
        graph = DependencyGraph({"SchC_Line31": ["Sch1:Line3"]}, {"Sch1.Line3": ["1040_Line8"]})
        assert graph.targets("SchC.Line31") == ("Sch1.Line3",)
        assert graph.targets("Sch1_Line3") == ("1040.Line8",)

    def test_duplicate_sources_merge_without_duplicate_targets(self):
        graph = DependencyGraph({"A.x": ["B.y"]}, {"A_x": ["B_y", "C_z"]})
        assert graph.targets("A.x") == ("B.y", "C.z")
        assert len(graph) == 1

    def test_cycle_rejected_at_construction(self):
        with pytest.raises(DependencyCycleError) as exc_info:
            DependencyGraph({"A.a": ["B.b"], "B.b": ["C.c"], "C.c": ["A_a"]})
        assert exc_info.value.cycle[0] == exc_info.value.cycle[-1]
        assert "A.a" in exc_info.value.cycle

    def test_self_loop_rejected(self):
        with pytest.raises(DependencyCycleError):
            build_graph([{"A.a": ["A:a"]}])


class TestDependencyGraphWalk:
    """Tests for walk and cascade."""

    def test_default_graph_edges(self):
        assert DEFAULT_DEPENDENCY_GRAPH.targets("W2.box1") == ("1040.line1z",)
        assert DEFAULT_DEPENDENCY_GRAPH.targets("SchC.netProfit") == (
            "1040.line3", "SchSE.seTax", "1040.totalIncome",
        )
        assert "SchC_Line31" in DEFAULT_DEPENDENCY_GRAPH

    def test_walk_is_depth_first(self):
        assert DEFAULT_DEPENDENCY_GRAPH.walk("SchC_Line31") == ["Sch1.Line3", "1040.Line8"]

    def test_walk_keeps_diamond_duplicates(self):
        graph = DependencyGraph({"A.a": ["B.b", "C.c"], "B.b": ["D.d"], "C.c": ["D.d"]})
        assert graph.walk("A.a") == ["B.b", "D.d", "C.c", "D.d"]

    def test_walk_of_leaf_is_empty(self):
        assert DEFAULT_DEPENDENCY_GRAPH.walk("1040.Line8") == []

    def test_cascade_applies_value_to_every_dependent(self):
        """Setting SchC.Line31 should reach Sch1.Line3 and 1040.Line8."""
        applied = {}
        visited = DEFAULT_DEPENDENCY_GRAPH.cascade(
            "SchC.Line31", 12000, lambda key, value: applied.__setitem__(key, value)
        )
        assert visited == ["Sch1.Line3", "1040.Line8"]
        assert applied == {"Sch1.Line3": 12000, "1040.Line8": 12000}
