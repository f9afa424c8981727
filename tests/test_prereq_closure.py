import pytest

from prereq_closure import ModuleGraph, resolve_prerequisite_closure


class FakeStore:
    """Serves simple prerequisites from a dict and records each batch."""

    def __init__(self, simple, fail_on=None):
        self.simple = simple
        self.fail_on = fail_on
        self.batches = []

    def get_batch_simple_prerequisites(self, codes):
        self.batches.append(list(codes))
        if self.fail_on and self.fail_on in codes:
            raise RuntimeError("store unavailable")
        return {c: list(self.simple[c]) for c in codes if c in self.simple}


class TestModuleGraph:
    def test_node_is_stable(self):
        graph = ModuleGraph()
        a = graph.node("CS1010")
        assert graph.node("CS1010") == a
        assert len(graph) == 1

    def test_edges_deduped(self):
        graph = ModuleGraph()
        a, b = graph.node("CS2040S"), graph.node("CS1010")
        graph.add_edge(a, b)
        graph.add_edge(a, b)
        assert graph.edges[a] == [b]


class TestResolvePrerequisiteClosure:
    def test_single_hop(self):
        result = resolve_prerequisite_closure(FakeStore({"CS2040S": ["CS1010"]}), ["CS2040S"])
        assert result["closure"] == ["CS2040S", "CS1010"]
        assert result["prerequisites"] == ["CS1010"]
        assert result["direct"] == {"CS2040S": ["CS1010"]}
        assert result["complete"] is True
        assert result["error"] is None

    def test_transitive_chain(self):
        store = FakeStore({"CS3230": ["CS2040S"], "CS2040S": ["CS1010"]})
        result = resolve_prerequisite_closure(store, ["CS3230"])
        assert result["closure"] == ["CS3230", "CS2040S", "CS1010"]

    def test_one_batch_per_level(self):
        store = FakeStore({"A": ["C"], "B": ["C"], "C": ["D"]})
        resolve_prerequisite_closure(store, ["A", "B"])
        assert store.batches == [["A", "B"], ["C"], ["D"]]

    def test_cycle_terminates(self):
        store = FakeStore({"A": ["B"], "B": ["A"]})
        result = resolve_prerequisite_closure(store, ["A"])
        assert result["closure"] == ["A", "B"]
        assert result["direct"] == {"A": ["B"], "B": ["A"]}

    def test_root_reached_from_other_root_is_not_a_prerequisite(self):
        store = FakeStore({"CS2040S": ["CS1010"]})
        result = resolve_prerequisite_closure(store, ["CS2040S", "CS1010"])
        assert result["closure"] == ["CS2040S", "CS1010"]
        assert result["prerequisites"] == []

    def test_duplicate_and_blank_roots(self):
        result = resolve_prerequisite_closure(FakeStore({}), ["CS1010", "", "CS1010"])
        assert result["closure"] == ["CS1010"]

    def test_empty(self):
        result = resolve_prerequisite_closure(FakeStore({}), [])
        assert result["closure"] == []
        assert result["complete"] is True

    def test_failed_batch_stops_and_keeps_partial(self, capsys):
        store = FakeStore({"CS3230": ["CS2040S"], "CS2040S": ["CS1010"]}, fail_on="CS2040S")
        result = resolve_prerequisite_closure(store, ["CS3230"])
        assert result["complete"] is False
        assert "store unavailable" in result["error"]
        assert result["closure"] == ["CS3230", "CS2040S"]
        assert "[WARN]" in capsys.readouterr().err

    def test_real_store(self, repo_store):
        result = resolve_prerequisite_closure(repo_store, ["CS2040S", "CS2030S", "CS3230"])
        # CS3230 has an AND rule, which takes no part in closure
        assert result["closure"] == ["CS2040S", "CS2030S", "CS3230", "CS1010"]
        assert result["prerequisites"] == ["CS1010"]

    def test_closure_is_a_fixed_point(self, repo_store):
        first = resolve_prerequisite_closure(repo_store, ["CS3230", "CS2100", "ST2334"])
        second = resolve_prerequisite_closure(repo_store, first["closure"])
        assert set(second["closure"]) == set(first["closure"])
        assert second["prerequisites"] == []

    def test_cyclic_closure_is_a_fixed_point(self):
        store = FakeStore({"A": ["B"], "B": ["C"], "C": ["A"]})
        first = resolve_prerequisite_closure(store, ["A"])
        assert sorted(resolve_prerequisite_closure(store, first["closure"])["closure"]) == ["A", "B", "C"]
