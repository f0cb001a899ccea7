import pytest

from batou_nfs.engine import ConvergenceEngine
from batou_nfs.graph import DependencyGraph
from batou_nfs.resource import Outcome, ResourceRef

from .fakes import Fake, Host


@pytest.fixture
def host():
    return Host()


@pytest.fixture
def graph():
    return DependencyGraph()


def outcomes(report):
    return {ref.name: result.outcome for ref, result in report}


def test_first_run_changes_second_run_is_unchanged(host, graph):
    a, b, c = [graph.add(Fake(label, host=host)) for label in "abc"]
    graph.require(a, b)
    graph.notify(a, c)

    engine = ConvergenceEngine()
    report = engine.converge(graph)
    assert report.success
    assert set(outcomes(report).values()) == {Outcome.CHANGED}

    report = engine.converge(graph)
    assert report.success
    assert set(outcomes(report).values()) == {Outcome.UNCHANGED}
    assert report.refreshed == []


def test_requirements_are_applied_first(host, graph):
    resources = [graph.add(Fake(label, host=host)) for label in "abcde"]
    a, b, c, d, e = resources
    graph.require(e, a)
    graph.require(d, b)
    graph.require(a, b)
    graph.require(c, d)

    ConvergenceEngine().converge(graph)

    applied = host.applied()
    for before, after in [(e, a), (d, b), (a, b), (c, d)]:
        assert applied.index(before.label) < applied.index(after.label)


def test_notifications_are_coalesced(host, graph):
    service = graph.add(Fake("service", host=host))
    host.state["service"] = "present"
    notifiers = [graph.add(Fake(label, host=host)) for label in "xyz"]
    for notifier in notifiers:
        graph.notify(notifier, service)

    report = ConvergenceEngine().converge(graph)

    assert host.refreshed() == ["service"]
    # The refresh happens after every notifier was applied.
    assert host.journal[-1] == ("refresh", "service")
    assert report.refreshed == [ResourceRef("Fake", "service")]
    assert report[ResourceRef("Fake", "service")].outcome is Outcome.CHANGED


def test_unchanged_notifier_does_not_refresh(host, graph):
    service = graph.add(Fake("service", host=host))
    config = graph.add(Fake("config", host=host))
    host.state.update(service="present", config="present")
    graph.notify(config, service)

    report = ConvergenceEngine().converge(graph)

    assert host.refreshed() == []
    assert outcomes(report) == {
        "service": Outcome.UNCHANGED,
        "config": Outcome.UNCHANGED,
    }


def test_failure_skips_dependents_but_not_independent_resources(host, graph):
    x = graph.add(Fake("x", host=host, fail=True))
    y = graph.add(Fake("y", host=host))
    w = graph.add(Fake("w", host=host))
    z = graph.add(Fake("z", host=host))
    graph.require(x, y)
    graph.require(y, w)

    report = ConvergenceEngine().converge(graph)

    assert outcomes(report) == {
        "x": Outcome.FAILED,
        "y": Outcome.SKIPPED,
        "w": Outcome.SKIPPED,
        "z": Outcome.CHANGED,
    }
    assert "y" not in host.applied()
    assert "w" not in host.applied()
    assert "broken on purpose" in report[x.ref].reason
    assert "Fake[x]" in report[y.ref].reason
    assert "Fake[y]" in report[w.ref].reason
    assert not report.success
    assert report.failed == [x.ref]
    assert report.skipped == [y.ref, w.ref]
    assert z.ref not in report.failed


def test_failed_or_skipped_targets_are_not_refreshed(host, graph):
    broken = graph.add(Fake("broken", host=host, fail=True))
    service = graph.add(Fake("service", host=host))
    config = graph.add(Fake("config", host=host))
    graph.require(broken, service)
    graph.notify(config, service)
    graph.notify(config, broken)

    report = ConvergenceEngine().converge(graph)

    assert host.refreshed() == []
    assert report[service.ref].outcome is Outcome.SKIPPED
    assert report[broken.ref].outcome is Outcome.FAILED


def test_exceptions_while_querying_fail_the_resource(host, graph, mocker):
    a = graph.add(Fake("a", host=host))
    b = graph.add(Fake("b", host=host))
    mocker.patch.object(a, "current_state", side_effect=OSError("no access"))

    report = ConvergenceEngine().converge(graph)

    assert report[a.ref].outcome is Outcome.FAILED
    assert report[a.ref].reason == "no access"
    assert report[b.ref].outcome is Outcome.CHANGED


def test_failing_refresh_fails_the_target(host, graph, mocker):
    service = graph.add(Fake("service", host=host))
    config = graph.add(Fake("config", host=host))
    host.state["service"] = "present"
    graph.notify(config, service)
    mocker.patch.object(service, "refresh", side_effect=RuntimeError("boom"))

    report = ConvergenceEngine().converge(graph)

    assert report[service.ref].outcome is Outcome.FAILED
    assert not report.success


def test_predict_does_not_touch_the_host(host, graph):
    a = graph.add(Fake("a", host=host))
    b = graph.add(Fake("b", host=host))
    host.state["b"] = "present"
    graph.notify(a, b)

    report = ConvergenceEngine(predict=True).converge(graph)

    assert outcomes(report) == {"a": Outcome.CHANGED, "b": Outcome.UNCHANGED}
    assert host.state == {"b": "present"}
    assert host.journal == []


def test_summary_lists_every_resource(host, graph):
    graph.add(Fake("a", host=host))
    graph.add(Fake("b", host=host, fail=True))

    report = ConvergenceEngine().converge(graph)

    assert report.summary() == {
        "Fake[a]": "changed",
        "Fake[b]": "failed: Fake[b]: broken on purpose",
    }
