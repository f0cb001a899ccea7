import collections

import batou

from batou_nfs.resource import ConvergenceResult, Outcome


class Report(object):
    """Outcome of one convergence run, per resource in apply order."""

    def __init__(self):
        self.results = collections.OrderedDict()
        self.refreshed = []

    def __getitem__(self, ref):
        return self.results[ref]

    def __iter__(self):
        return iter(self.results.items())

    def __len__(self):
        return len(self.results)

    def _with(self, outcome):
        return [
            ref for ref, result in self.results.items()
            if result.outcome is outcome
        ]

    @property
    def changed(self):
        return self._with(Outcome.CHANGED)

    @property
    def failed(self):
        return self._with(Outcome.FAILED)

    @property
    def skipped(self):
        return self._with(Outcome.SKIPPED)

    @property
    def success(self):
        return not (self.failed or self.skipped)

    def summary(self):
        return {
            str(ref): str(result) for ref, result in self.results.items()
        }


class ConvergenceEngine(object):
    """Apply a `DependencyGraph` in dependency order.

    A failing resource does not stop the run: everything that requires it
    is skipped, independent resources still converge. Notifications are
    collected while walking the graph and every notified resource is
    refreshed once after all resources were applied.

    With `predict` set, resources are only verified.
    """

    def __init__(self, predict=False):
        self.predict = predict

    def converge(self, graph):
        order = graph.order()
        report = Report()
        results = {}
        pending_refresh = set()

        for index in order:
            resource = graph.resources[index]
            blocked = [
                graph.resources[req].ref
                for req in graph.requires_of(index)
                if not results[req].ok
            ]
            if blocked:
                result = ConvergenceResult.skipped(
                    "requires " + ", ".join(str(r) for r in blocked)
                )
                resource.log(str(result), yellow=True)
            else:
                result = self._apply(resource)
            results[index] = result
            report.results[resource.ref] = result
            if result.outcome is Outcome.CHANGED:
                pending_refresh.update(graph.notifies_of(index))

        if self.predict:
            return report

        for index in order:
            if index not in pending_refresh or not results[index].ok:
                continue
            resource = graph.resources[index]
            try:
                result = resource.refresh()
            except Exception as e:
                result = ConvergenceResult.failed(e)
                batou.output.error(f"{resource.ref}: refresh failed: {e}")
            report.refreshed.append(resource.ref)
            if result.outcome is not Outcome.UNCHANGED:
                results[index] = result
                report.results[resource.ref] = result

        return report

    def _apply(self, resource):
        try:
            if self.predict:
                return resource.predict()
            return resource.apply()
        except Exception as e:
            batou.output.error(f"{resource.ref}: {e}")
            return ConvergenceResult.failed(e)
