import heapq

from batou_nfs.errors import (
    ContradictoryResourceDeclaration,
    CyclicDependency,
    UnknownResource,
)
from batou_nfs.resource import Resource


class DependencyGraph(object):
    """Resources plus the require and notify edges between them.

    Resources live in a table indexed by declaration order. Edges are
    resolved to indices into that table when they are declared::

        graph = DependencyGraph()
        pkg = graph.add(Package("nfs-common"))
        svc = graph.add(Service("nfs-kernel-server"))
        graph.require(pkg, svc)
        graph.notify(pkg, svc)

    """

    def __init__(self):
        self.resources = []
        self._index = {}
        self._requires = []  # index -> [indices that must converge first]
        self._notifies = []  # index -> [indices to refresh on change]

    def __len__(self):
        return len(self.resources)

    def __iter__(self):
        return iter(self.resources)

    def __contains__(self, item):
        return self._ref(item) in self._index

    def _ref(self, item):
        if isinstance(item, Resource):
            return item.ref
        return item

    def add(self, resource):
        """Register a resource and return the registered instance.

        Declaring the same identity twice with identical attributes returns
        the existing instance.
        """
        ref = resource.ref
        if ref in self._index:
            existing = self.resources[self._index[ref]]
            if existing.desired() != resource.desired():
                raise ContradictoryResourceDeclaration(
                    ref, existing.desired(), resource.desired()
                )
            return existing
        self._index[ref] = len(self.resources)
        self.resources.append(resource)
        self._requires.append([])
        self._notifies.append([])
        return resource

    def get(self, item):
        return self.resources[self.index(item)]

    def index(self, item):
        ref = self._ref(item)
        try:
            return self._index[ref]
        except KeyError:
            raise UnknownResource(ref)

    def require(self, before, after):
        """`before` must converge before `after`."""
        a, b = self.index(before), self.index(after)
        if a not in self._requires[b]:
            self._requires[b].append(a)

    def notify(self, source, target):
        """Refresh `target` if `source` changed."""
        a, b = self.index(source), self.index(target)
        if b not in self._notifies[a]:
            self._notifies[a].append(b)

    def requires_of(self, index):
        return list(self._requires[index])

    def notifies_of(self, index):
        return list(self._notifies[index])

    def order(self):
        """Topological order of resource indices over require edges.

        Ties are broken by declaration order.
        """
        dependents = [[] for _ in self.resources]
        pending = [len(reqs) for reqs in self._requires]
        for index, reqs in enumerate(self._requires):
            for req in reqs:
                dependents[req].append(index)

        ready = [i for i, count in enumerate(pending) if not count]
        heapq.heapify(ready)
        result = []
        while ready:
            index = heapq.heappop(ready)
            result.append(index)
            for dependent in dependents[index]:
                pending[dependent] -= 1
                if not pending[dependent]:
                    heapq.heappush(ready, dependent)

        if len(result) != len(self.resources):
            raise CyclicDependency(
                self.resources[i].ref for i in self._find_cycle(pending)
            )
        return result

    def _find_cycle(self, pending):
        # Every node left with pending requirements is on or behind a
        # cycle. Walking requirements backwards from one of them must
        # eventually revisit a node.
        start = next(i for i, count in enumerate(pending) if count)
        path = []
        seen = {}
        node = start
        while node not in seen:
            seen[node] = len(path)
            path.append(node)
            node = next(req for req in self._requires[node] if pending[req])
        cycle = path[seen[node] :]
        cycle.reverse()
        return cycle + [cycle[0]]
