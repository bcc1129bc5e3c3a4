"""
the resolution orchestrator.

drives one ForkSolver over a queue of forks: the root fork (or the fork plan
of an earlier lock), plus the children every split produces. finished forks
are turned into ForkResolution records, forks that came out identical are
merged, and the result is sorted by position in the fork tree.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from packaging.version import Version

from ..config import ResolutionStrategy, ResolverOptions
from ..domain.errors import NoUsableArtifact, UnsatisfiableError
from ..domain.models import Project, Requirement
from ..lock.lockfile import LockedPackage, Lockfile
from ..lock.preferences import Preferences
from ..markers import MarkerTree
from ..registry.client import RegistryClient
from .candidates import CandidateSelector
from .dependencies import DependencyEdge
from .forks import ForkEnvironment, ForkTree, initial_forks
from .index import PackageIndex
from .packages import PackageId, PackageKind
from .solver import ForkSolver, ForkState, Reporter, Split, Succeeded
from .wheel_tags import target_tags

logger = logging.getLogger(__name__)


class ForkResolution:
    """the outcome of one (possibly merged) fork."""

    def __init__(
        self,
        marker: MarkerTree,
        path: Tuple[int, ...],
        versions: Dict[str, Version],
        markers: Dict[str, MarkerTree],
        edges: List[DependencyEdge],
        warnings: List[NoUsableArtifact],
        decision_order: List[PackageId],
    ):
        self.marker = marker
        self.path = path
        # base package name -> selected version
        self.versions = versions
        # base package name -> where inside the fork it is needed
        self.markers = markers
        self.edges = edges
        self.warnings = warnings
        self.decision_order = decision_order

    def signature(self) -> tuple:
        """what two forks must share to be merged."""
        versions = tuple(sorted((name, str(v)) for name, v in self.versions.items()))
        edges = tuple(sorted(_edge_key(edge) for edge in self.edges))
        return versions, edges

    def __repr__(self) -> str:
        return f"ForkResolution({str(self.marker)!r}, {len(self.versions)} packages)"


class ResolutionResult:
    def __init__(self, forks: List[ForkResolution], requires_python: Optional[str] = None):
        self.forks = forks
        self.requires_python = requires_python

    @property
    def fork_markers(self) -> List[MarkerTree]:
        """the markers of every reported fork; empty for a single universal fork."""
        if len(self.forks) == 1 and self.forks[0].marker.is_true():
            return []
        return [fork.marker for fork in self.forks]

    @property
    def warnings(self) -> List[NoUsableArtifact]:
        result = []
        for fork in self.forks:
            for warning in fork.warnings:
                if warning not in result:
                    result.append(warning)
        return result

    def packages(self) -> Dict[str, List[Tuple[Version, MarkerTree]]]:
        """name -> (version, marker) for every version picked by any fork."""
        result: Dict[str, Dict[Version, MarkerTree]] = {}
        for fork in self.forks:
            for name, version in fork.versions.items():
                marker = fork.marker.and_(fork.markers.get(name, MarkerTree.TRUE))
                by_version = result.setdefault(name, {})
                by_version[version] = by_version[version].or_(marker) if version in by_version else marker
        return {
            name: sorted(by_version.items(), key=lambda item: item[0])
            for name, by_version in sorted(result.items())
        }

    def to_lockfile(self) -> Lockfile:
        packages = []
        for name, entries in self.packages().items():
            for version, marker in entries:
                markers = [] if marker.is_true() else [str(marker)]
                packages.append(LockedPackage(name=name, version=str(version), markers=markers))
        lockfile = Lockfile(
            requires_python=self.requires_python,
            fork_markers=[str(m) for m in self.fork_markers],
            packages=packages,
        )
        lockfile.content_hash = lockfile.compute_hash()
        return lockfile


def _edge_key(edge: DependencyEdge) -> Tuple[str, str, str]:
    # edge markers are relative to their fork; merged forks join them through `markers`
    return str(edge.source), str(edge.package), str(edge.range)


def _package_markers(root: PackageId, decisions: Dict[PackageId, Version], edges: List[DependencyEdge]) -> Dict[str, MarkerTree]:
    """
    where each package is needed inside the fork.

    a package is needed wherever some path of edges from the root reaches
    it; the marker of a path is the conjunction of its edge markers.
    """
    outgoing: Dict[PackageId, List[DependencyEdge]] = {}
    for edge in edges:
        outgoing.setdefault(edge.source, []).append(edge)

    reach: Dict[PackageId, MarkerTree] = {root: MarkerTree.TRUE}
    queue = [root]
    while queue:
        source = queue.pop(0)
        for edge in outgoing.get(source, []):
            if edge.package not in decisions:
                continue
            contribution = reach[source].and_(edge.marker)
            old = reach.get(edge.package)
            new = contribution if old is None else old.or_(contribution)
            if old is None or not new.equivalent(old):
                reach[edge.package] = new
                queue.append(edge.package)

    result: Dict[str, MarkerTree] = {}
    for package, marker in reach.items():
        if not package.has_version:
            continue
        result[package.name] = result[package.name].or_(marker) if package.name in result else marker
    return result


class Resolver:
    """
    resolves a project against a registry.

    forks run one after another by default, or as concurrent asyncio tasks
    when `concurrent_forks` is set; the first failing fork cancels the rest.
    """

    def __init__(
        self,
        registry: RegistryClient,
        options: Optional[ResolverOptions] = None,
        preferences: Optional[Preferences] = None,
        preferred_forks: Optional[List[MarkerTree]] = None,
        reporter: Optional[Reporter] = None,
        cancel_event=None,
    ):
        self.registry = registry
        self.options = options or ResolverOptions()
        self.preferences = preferences or Preferences()
        self.preferred_forks = preferred_forks or []
        self.reporter = reporter or Reporter()
        self.cancel_event = cancel_event

    async def resolve(self, project: Project) -> ResolutionResult:
        # malformed project input fails before any solving starts
        requirements = project.requirements
        logger.debug(f"resolving {len(requirements)} requirements of {project.name}")
        for extra in project.extras:
            project.extra_requirements(extra)
        for group in project.groups:
            project.group_requirements(group)
        for text in project.constraints + project.overrides:
            Requirement.from_pep508(text)

        env = ForkEnvironment.root(project.requires_python_range)
        index = PackageIndex(self.registry)
        sibling_preferences: Dict[str, Version] = {}
        selector = CandidateSelector(self.options, self.preferences, sibling_preferences)
        solver = ForkSolver(
            project,
            index,
            selector,
            self.options,
            target_tags(self.options.tags),
            cancel_event=self.cancel_event,
            reporter=self.reporter,
        )

        tree = ForkTree()
        root_node = tree.add(None, env.marker)
        states = [solver.new_state(env, root_node)]
        seeded = initial_forks(self.preferred_forks, env) if self.preferred_forks else None
        if seeded:
            logger.info(f"starting from {len(seeded)} forks of the previous resolution")
            states = [states[0].fork(env._replace(marker=marker), tree.add(root_node, marker)) for marker in seeded]

        try:
            if self.options.concurrent_forks:
                finished = await self._solve_concurrently(solver, tree, states)
            else:
                finished = await self._solve_sequentially(solver, tree, states, sibling_preferences)
        finally:
            index.cancel_pending()

        forks = [self._finish(solver, tree, state) for state in finished]
        forks = self._coalesce(forks)
        forks.sort(key=lambda fork: fork.path)
        logger.info(
            f"resolved {sum(len(f.versions) for f in forks)} packages in {len(forks)} "
            f"fork{'s' if len(forks) != 1 else ''} ({index.fetched} metadata fetches)"
        )
        return ResolutionResult(forks, project.requires_python)

    async def _solve_fork(self, solver: ForkSolver, state: ForkState):
        display = state.env.display_marker()
        self.reporter.on_fork_start(display)
        try:
            outcome = await solver.solve(state)
        except UnsatisfiableError as e:
            if display.is_true() or e.fork_marker is not None:
                raise
            raise UnsatisfiableError(e.incompatibility, fork_marker=str(display)) from e
        if isinstance(outcome, Succeeded):
            self.reporter.on_fork_finished(display, len(state.decisions))
        return outcome

    def _children(self, tree: ForkTree, split: Split) -> List[ForkState]:
        parent = split.state
        children = []
        for marker in split.markers:
            node = tree.add(parent.node, marker)
            children.append(parent.fork(parent.env._replace(marker=marker), node))
        return children

    async def _solve_sequentially(
        self,
        solver: ForkSolver,
        tree: ForkTree,
        states: List[ForkState],
        sibling_preferences: Dict[str, Version],
    ) -> List[ForkState]:
        pending = list(reversed(states))
        finished = []
        while pending:
            state = pending.pop()
            outcome = await self._solve_fork(solver, state)
            if isinstance(outcome, Split):
                pending.extend(reversed(self._children(tree, outcome)))
                continue

            finished.append(state)
            if self.options.resolution_strategy in (ResolutionStrategy.HIGHEST, ResolutionStrategy.LOWEST):
                # later forks prefer what earlier ones picked, keeping the lock small
                for package, version in state.decisions.items():
                    if package.kind == PackageKind.BASE:
                        sibling_preferences.setdefault(package.name, version)
        return finished

    async def _solve_concurrently(self, solver: ForkSolver, tree: ForkTree, states: List[ForkState]) -> List[ForkState]:
        tasks: Dict[asyncio.Task, ForkState] = {}
        for state in states:
            tasks[asyncio.ensure_future(self._solve_fork(solver, state))] = state

        finished = []
        try:
            while tasks:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=lambda t: tasks[t].node):
                    tasks.pop(task)
                    outcome = task.result()
                    if isinstance(outcome, Split):
                        for child in self._children(tree, outcome):
                            tasks[asyncio.ensure_future(self._solve_fork(solver, child))] = child
                    else:
                        finished.append(outcome.state)
        finally:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
        return finished

    def _finish(self, solver: ForkSolver, tree: ForkTree, state: ForkState) -> ForkResolution:
        decisions = state.decisions
        display = state.env.display_marker()
        edges = [edge for package in decisions for edge in state.edges.get(package, [])]
        versions = {
            package.name: version
            for package, version in decisions.items()
            if package.kind == PackageKind.BASE
        }
        markers = _package_markers(state.root, decisions, edges)
        return ForkResolution(
            marker=display,
            path=tree.path(state.node),
            versions=dict(sorted(versions.items())),
            markers={name: self._relative_marker(state, markers.get(name)) for name in sorted(versions)},
            edges=edges,
            warnings=solver.warnings(state, None if display.is_true() else str(display)),
            decision_order=list(decisions),
        )

    @staticmethod
    def _relative_marker(state: ForkState, marker: Optional[MarkerTree]) -> MarkerTree:
        if marker is None or state.env.marker.implies(marker):
            return MarkerTree.TRUE
        return marker.simplify_python(state.env.requires_python)

    def _coalesce(self, forks: List[ForkResolution]) -> List[ForkResolution]:
        """merge forks that selected the same versions through the same edges."""
        merged: Dict[tuple, ForkResolution] = {}
        for fork in sorted(forks, key=lambda f: f.path):
            signature = fork.signature()
            existing = merged.get(signature)
            if existing is None:
                merged[signature] = fork
                continue
            logger.info(f"merging fork `{fork.marker}` into `{existing.marker}`: identical resolutions")
            # package markers become absolute before the fork markers are joined
            for name, marker in fork.markers.items():
                ours = existing.marker.and_(existing.markers[name])
                existing.markers[name] = ours.or_(fork.marker.and_(marker))
            existing.marker = existing.marker.or_(fork.marker)
            for warning in fork.warnings:
                if warning not in existing.warnings:
                    existing.warnings.append(warning)
        return list(merged.values())
