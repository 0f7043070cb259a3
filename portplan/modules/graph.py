# portplan/modules/graph.py
"""
Package graph - turns requested specs, installed state and port metadata into
an ordered install plan.

Resolution runs in two phases:
 - seed: request_install / request_upgrade / request_rebuild / request_remove
   validate each argument eagerly and record input errors instead of raising,
   so every bad argument can be reported in one pass.
 - close: resolve() walks declared dependencies of every queued build, queues
   missing dependencies, detects cycles and emits a stable topological order.

The graph reads a frozen RegistrySnapshot; it never sees the live registry.
"""

from __future__ import annotations
import heapq
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from portplan.modules import logger as _logger
from portplan.modules.catalog import PortCatalog, PortMetadata
from portplan.modules.identity import PackageSpec
from portplan.modules.plan import (
    AlreadySatisfied,
    BuildAction,
    BuildReason,
    InstallPlan,
    RemoveAction,
)
from portplan.modules.registry import InstalledRecord, RegistrySnapshot

LOG = _logger.Logger("graph")

# Higher wins when two requests queue a build for the same spec.
_REASON_RANK = {
    BuildReason.DEPENDENCY_CHANGED: 0,
    BuildReason.NOT_INSTALLED: 1,
    BuildReason.VERSION_MISMATCH: 2,
    BuildReason.EXPLICIT_REBUILD: 3,
}


@dataclass(frozen=True, order=True)
class NotInstalled:
    spec: PackageSpec

    def __str__(self) -> str:
        return f"{self.spec} is not installed"


@dataclass(frozen=True, order=True)
class NoPortfile:
    spec: PackageSpec

    def __str__(self) -> str:
        return f"{self.spec} does not have a valid portfile"


@dataclass(frozen=True, order=True)
class DependencyCycle:
    specs: Tuple[PackageSpec, ...]

    def __str__(self) -> str:
        return "dependency cycle between " + ", ".join(str(s) for s in self.specs)


@dataclass(frozen=True, order=True)
class HasDependents:
    spec: PackageSpec
    dependents: Tuple[PackageSpec, ...]

    def __str__(self) -> str:
        return f"{self.spec} is required by " + ", ".join(str(s) for s in self.dependents)


ResolutionProblem = Union[NotInstalled, NoPortfile, HasDependents, DependencyCycle]


class ResolutionError(Exception):
    """Every problem found while resolving, grouped for reporting."""

    def __init__(self, errors: Iterable[ResolutionProblem]):
        self.errors: List[ResolutionProblem] = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))

    @property
    def not_installed(self) -> List[PackageSpec]:
        return sorted(e.spec for e in self.errors if isinstance(e, NotInstalled))

    @property
    def no_portfile(self) -> List[PackageSpec]:
        return sorted(e.spec for e in self.errors if isinstance(e, NoPortfile))

    @property
    def has_dependents(self) -> List[HasDependents]:
        return sorted(e for e in self.errors if isinstance(e, HasDependents))

    @property
    def cycles(self) -> List[DependencyCycle]:
        return [e for e in self.errors if isinstance(e, DependencyCycle)]


class PackageGraph:
    def __init__(self, catalog: PortCatalog, snapshot: RegistrySnapshot):
        self.catalog = catalog
        self.snapshot = snapshot
        self._builds: Dict[PackageSpec, BuildReason] = {}
        self._removes: Set[PackageSpec] = set()
        self._forced: Set[PackageSpec] = set()
        self._satisfied: Set[PackageSpec] = set()
        self._errors: List[ResolutionProblem] = []

    # -----------------------
    # Helpers
    # -----------------------
    def _installed(self, spec: PackageSpec) -> Optional[InstalledRecord]:
        """Installed record, treating half-installed packages as absent."""
        record = self.snapshot.lookup(spec)
        if record is None or not record.is_installed:
            return None
        return record

    def _record_error(self, errors: List[ResolutionProblem], error: ResolutionProblem):
        if error not in errors:
            errors.append(error)

    def _queue_build(self, spec: PackageSpec, reason: BuildReason):
        current = self._builds.get(spec)
        if current is None or _REASON_RANK[reason] > _REASON_RANK[current]:
            self._builds[spec] = reason

    # -----------------------
    # Seeding
    # -----------------------
    def request_install(self, spec: PackageSpec):
        if self.catalog.lookup(spec.name) is None:
            self._record_error(self._errors, NoPortfile(spec))
            return
        if self._installed(spec) is None:
            self._queue_build(spec, BuildReason.NOT_INSTALLED)
        else:
            self._satisfied.add(spec)

    def request_upgrade(self, spec: PackageSpec):
        record = self._installed(spec)
        meta = self.catalog.lookup(spec.name)
        if record is None:
            self._record_error(self._errors, NotInstalled(spec))
        if meta is None:
            self._record_error(self._errors, NoPortfile(spec))
        if record is None or meta is None:
            return
        # any difference counts, the catalog is the only notion of "current"
        if record.version == meta.version:
            self._satisfied.add(spec)
        else:
            LOG.debug(f"{spec}: installed {record.version}, portfile {meta.version}")
            self._queue_build(spec, BuildReason.VERSION_MISMATCH)

    def request_rebuild(self, spec: PackageSpec):
        if self.catalog.lookup(spec.name) is None:
            self._record_error(self._errors, NoPortfile(spec))
            return
        self._queue_build(spec, BuildReason.EXPLICIT_REBUILD)

    def request_remove(self, spec: PackageSpec, force: bool = False):
        """
        Queue removal of an installed package. Unless ``force`` is set,
        resolve() refuses it while installed packages that are not also being
        removed still depend on it.
        """
        if self._installed(spec) is None:
            self._record_error(self._errors, NotInstalled(spec))
            return
        self._removes.add(spec)
        if force:
            self._forced.add(spec)

    @property
    def errors(self) -> List[ResolutionProblem]:
        return list(self._errors)

    def validate(self):
        """Raise every input error recorded so far, without walking the graph."""
        if self._errors:
            raise ResolutionError(sorted(self._errors, key=_error_key))

    # -----------------------
    # Closure
    # -----------------------
    def resolve(self) -> InstallPlan:
        builds = dict(self._builds)
        errors = list(self._errors)
        declared: Dict[PackageSpec, Tuple[PackageSpec, ...]] = {}
        edges: Dict[PackageSpec, Tuple[PackageSpec, ...]] = {}
        metas: Dict[PackageSpec, PortMetadata] = {}

        def expand(spec: PackageSpec) -> Tuple[PackageSpec, ...]:
            meta = self.catalog.lookup(spec.name)
            metas[spec] = meta
            deps = tuple(spec.with_name(name) for name in meta.dependencies)
            needed = []
            for dep in deps:
                if dep in builds:
                    needed.append(dep)
                elif dep not in self._removes and self._installed(dep) is not None:
                    continue
                elif self.catalog.lookup(dep.name) is None:
                    self._record_error(errors, NoPortfile(dep))
                else:
                    builds[dep] = BuildReason.DEPENDENCY_CHANGED
                    needed.append(dep)
            declared[spec] = deps
            edges[spec] = tuple(needed)
            return edges[spec]

        # iterative DFS; a node seen again while still on the path closes a cycle
        done: Set[PackageSpec] = set()
        for root in sorted(builds):
            if root in done:
                continue
            path = [root]
            on_path = {root}
            stack = [iter(expand(root))]
            while stack:
                dep = next(stack[-1], None)
                if dep is None:
                    node = path.pop()
                    on_path.discard(node)
                    done.add(node)
                    stack.pop()
                    continue
                if dep in on_path:
                    members = tuple(sorted(path[path.index(dep):]))
                    LOG.error(f"Dependency cycle detected: {', '.join(str(s) for s in members)}")
                    raise ResolutionError(sorted(errors, key=_error_key) + [DependencyCycle(members)])
                if dep in done:
                    continue
                path.append(dep)
                on_path.add(dep)
                stack.append(iter(expand(dep)))

        # precedence for one spec: build, then remove, then already satisfied
        removes = self._removes - builds.keys()
        for spec in sorted(removes - self._forced):
            dependents = self._remaining_dependents(spec, removes)
            if dependents:
                self._record_error(errors, HasDependents(spec, dependents))

        if errors:
            raise ResolutionError(sorted(errors, key=_error_key))

        satisfied = self._satisfied - builds.keys() - removes

        actions = [
            AlreadySatisfied(spec, self.snapshot.lookup(spec).version)
            for spec in sorted(satisfied)
        ]
        actions.extend(
            RemoveAction(spec, self.snapshot.lookup(spec).version)
            for spec in self._order_removals(removes)
        )
        actions.extend(
            BuildAction(spec, builds[spec], metas[spec].version, declared[spec])
            for spec in _topological_order(builds.keys(), edges)
        )
        plan = InstallPlan(actions)
        LOG.debug(f"Resolved plan with {len(plan)} actions")
        return plan

    def _remaining_dependents(self, spec: PackageSpec, removes: Set[PackageSpec]) -> Tuple[PackageSpec, ...]:
        """Installed packages that depend on ``spec`` and stay installed."""
        return tuple(
            record.spec for record in self.snapshot.installed()
            if record.spec.triplet == spec.triplet
            and spec.name in record.depends
            and record.spec not in removes
        )

    def _order_removals(self, removes: Set[PackageSpec]) -> List[PackageSpec]:
        """Dependents are removed before the packages they depend on."""
        edges = {}
        for spec in removes:
            edges[spec] = tuple(
                other for other in removes
                if other.triplet == spec.triplet and spec.name in self.snapshot.lookup(other).depends
            )
        try:
            return _topological_order(removes, edges)
        except _CycleError as e:
            raise ResolutionError([DependencyCycle(tuple(sorted(e.members)))]) from None


class _CycleError(Exception):
    def __init__(self, members):
        self.members = members
        super().__init__("cycle")


def _error_key(error: ResolutionProblem):
    order = {NotInstalled: 0, NoPortfile: 1, HasDependents: 2, DependencyCycle: 3}
    return order[type(error)], str(error)


def _topological_order(nodes: Iterable[PackageSpec],
                       edges: Dict[PackageSpec, Tuple[PackageSpec, ...]]) -> List[PackageSpec]:
    """
    Kahn's algorithm; ``edges[n]`` lists what must come before ``n``.
    A min-heap breaks ties by spec order so the result is deterministic.
    """
    nodes = set(nodes)
    indegree = {n: 0 for n in nodes}
    dependents: Dict[PackageSpec, List[PackageSpec]] = {n: [] for n in nodes}
    for node in nodes:
        for before in set(edges.get(node, ())):
            if before in nodes:
                indegree[node] += 1
                dependents[before].append(node)
    ready = [n for n, deg in indegree.items() if deg == 0]
    heapq.heapify(ready)
    ordered = []
    while ready:
        node = heapq.heappop(ready)
        ordered.append(node)
        for m in dependents[node]:
            indegree[m] -= 1
            if indegree[m] == 0:
                heapq.heappush(ready, m)
    if len(ordered) != len(nodes):
        raise _CycleError(nodes - set(ordered))
    return ordered
