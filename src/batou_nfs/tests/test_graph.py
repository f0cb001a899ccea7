import pytest

from batou_nfs.errors import (
    ContradictoryResourceDeclaration,
    CyclicDependency,
    UnknownResource,
)
from batou_nfs.graph import DependencyGraph
from batou_nfs.resource import ResourceRef

from .fakes import Fake, Host


@pytest.fixture
def host():
    return Host()


def labels(graph):
    return [graph.resources[i].label for i in graph.order()]


def test_identical_declarations_are_merged(host):
    graph = DependencyGraph()
    first = graph.add(Fake("a", host=host))
    second = graph.add(Fake("a", host=host))
    assert first is second
    assert len(graph) == 1


def test_contradicting_declarations_fail(host):
    graph = DependencyGraph()
    graph.add(Fake("a", host=host))
    with pytest.raises(ContradictoryResourceDeclaration) as e:
        graph.add(Fake("a", value="absent", host=host))
    assert e.value.ref == ResourceRef("Fake", "a")


def test_edges_to_unknown_resources_fail(host):
    graph = DependencyGraph()
    a = graph.add(Fake("a", host=host))
    with pytest.raises(UnknownResource):
        graph.require(a, ResourceRef("Fake", "missing"))
    with pytest.raises(UnknownResource):
        graph.notify(Fake("b", host=host), a)


def test_edges_accept_refs(host):
    graph = DependencyGraph()
    graph.add(Fake("a", host=host))
    graph.add(Fake("b", host=host))
    graph.require(ResourceRef("Fake", "b"), ResourceRef("Fake", "a"))
    graph.notify(ResourceRef("Fake", "b"), ResourceRef("Fake", "a"))
    assert labels(graph) == ["b", "a"]
    assert graph.notifies_of(1) == [0]
    assert ResourceRef("Fake", "a") in graph


def test_order_without_edges_is_declaration_order(host):
    graph = DependencyGraph()
    for label in "dcba":
        graph.add(Fake(label, host=host))
    assert labels(graph) == ["d", "c", "b", "a"]


def test_order_respects_requirements_and_breaks_ties_stably(host):
    graph = DependencyGraph()
    a, b, c, d = [graph.add(Fake(label, host=host)) for label in "abcd"]
    graph.require(d, a)
    graph.require(c, b)
    assert labels(graph) == ["c", "b", "d", "a"]
    # Stable across calls.
    assert labels(graph) == ["c", "b", "d", "a"]


def test_duplicate_edges_are_ignored(host):
    graph = DependencyGraph()
    a = graph.add(Fake("a", host=host))
    b = graph.add(Fake("b", host=host))
    graph.require(a, b)
    graph.require(a, b)
    graph.notify(a, b)
    graph.notify(a, b)
    assert graph.requires_of(1) == [0]
    assert graph.notifies_of(0) == [1]


def test_notify_does_not_impose_order(host):
    graph = DependencyGraph()
    a = graph.add(Fake("a", host=host))
    b = graph.add(Fake("b", host=host))
    graph.notify(b, a)
    assert labels(graph) == ["a", "b"]


def test_cycle_is_detected(host):
    graph = DependencyGraph()
    a, b, c, d = [graph.add(Fake(label, host=host)) for label in "abcd"]
    graph.require(d, a)
    graph.require(a, b)
    graph.require(b, c)
    graph.require(c, a)
    with pytest.raises(CyclicDependency) as e:
        graph.order()
    cycle = e.value.cycle
    assert cycle[0] == cycle[-1]
    assert {ref.name for ref in cycle} == {"a", "b", "c"}
    assert "Fake[a]" in str(e.value)


def test_self_requirement_is_a_cycle(host):
    graph = DependencyGraph()
    a = graph.add(Fake("a", host=host))
    graph.require(a, a)
    with pytest.raises(CyclicDependency):
        graph.order()
