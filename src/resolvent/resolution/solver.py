"""
the decision loop for a single fork.

each fork owns a ForkState: its partial solution, incompatibility store,
prioritizer and the dependency edges of every decided package. the loop
propagates, picks the next package, picks a version, expands its
dependencies and either decides it or stops with a split request. children
of a split start from a copy of the parent's state.
"""
import asyncio
import logging
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple, Union

from packaging.tags import Tag
from packaging.version import Version

from ..algebra.range import VersionRange
from ..algebra.term import SetRelation, Term
from ..config import PythonForkStrategy, ResolverOptions
from ..domain.errors import (
    MarkerSyntaxError,
    MetadataUnavailable,
    NoUsableArtifact,
    RequirementError,
    ResolutionCancelled,
    UnsatisfiableError,
)
from ..domain.models import Project, VersionInfo
from ..markers import MarkerTree
from . import requires_python
from .candidates import CandidateSelector
from .dependencies import Dependency, DependencyEdge, collect, to_edges
from .forks import ForkEnvironment, split, split_on_python
from .incompatibility import (
    CauseKind,
    Incompatibility,
    IncompatibilityCause,
    IncompatibilityStore,
    dependency_incompatibility,
    is_root_kind,
)
from .index import PackageIndex
from .packages import PackageId, PackageKind
from .partial_solution import PartialSolution
from .priority import Prioritizer
from .wheel_tags import check_artifacts

logger = logging.getLogger(__name__)

# the version every root and dependency group is decided at
ROOT_VERSION = Version("0")


class ForkStatus(Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SPLIT = "split"


class Reporter:
    """progress callbacks; the default does nothing."""

    def on_fork_start(self, marker: MarkerTree) -> None:
        pass

    def on_decision(self, package: PackageId, version: Version) -> None:
        pass

    def on_fork_finished(self, marker: MarkerTree, decisions: int) -> None:
        pass


class ForkState:
    def __init__(self, root: PackageId, env: ForkEnvironment, node: int, conflict_threshold: int):
        self.root = root
        self.env = env
        self.node = node
        self.status = ForkStatus.RUNNING
        self.started = False
        self.next_package: Optional[PackageId] = None

        self.solution = PartialSolution()
        self.store = IncompatibilityStore()
        self.prioritizer = Prioritizer(conflict_threshold)

        self.edges: Dict[PackageId, List[DependencyEdge]] = {}
        self.chosen: Dict[PackageId, VersionInfo] = {}
        self.python_checked: Set[str] = set()
        self.python_excluded: Dict[str, VersionRange] = {}
        self.python_forked: Set[str] = set()
        self.malformed_checked: Set[str] = set()
        self.explicit_prereleases: Set[str] = set()
        self.direct: Set[str] = set()
        self.urls: Dict[str, str] = {}
        self.indexes: Dict[str, str] = {}

    def fork(self, env: ForkEnvironment, node: int) -> "ForkState":
        """a child state for `env`; nothing mutable is shared with the parent."""
        child = ForkState(self.root, env, node, self.prioritizer.conflict_threshold)
        child.started = self.started
        child.next_package = self.next_package
        child.solution = self.solution.copy()
        child.store = self.store.copy()
        child.prioritizer = self.prioritizer.copy()
        child.edges = {package: list(edges) for package, edges in self.edges.items()}
        child.chosen = dict(self.chosen)
        child.python_checked = set(self.python_checked)
        child.python_excluded = dict(self.python_excluded)
        child.python_forked = set(self.python_forked)
        child.malformed_checked = set(self.malformed_checked)
        child.explicit_prereleases = set(self.explicit_prereleases)
        child.direct = set(self.direct)
        child.urls = dict(self.urls)
        child.indexes = dict(self.indexes)
        return child

    @property
    def decisions(self) -> Dict[PackageId, Version]:
        return self.solution.decisions


class Succeeded(NamedTuple):
    state: ForkState


class Split(NamedTuple):
    state: ForkState
    markers: List[MarkerTree]


Outcome = Union[Succeeded, Split]

# a satisfied incompatibility found during propagation
_CONFLICT = object()


class ForkSolver:
    """runs the decision loop of one fork at a time; shared by all forks of a resolution."""

    def __init__(
        self,
        project: Project,
        index: PackageIndex,
        selector: CandidateSelector,
        options: ResolverOptions,
        tags: Iterable[Tag],
        cancel_event=None,
        reporter: Optional[Reporter] = None,
    ):
        self.project = project
        self.index = index
        self.selector = selector
        self.options = options
        self.tags = frozenset(tags)
        self.cancel_event = cancel_event
        self.reporter = reporter or Reporter()

    def new_state(self, env: ForkEnvironment, node: int) -> ForkState:
        root = PackageId.root(self.project.name)
        return ForkState(root, env, node, self.options.conflict_threshold)

    async def solve(self, state: ForkState) -> Outcome:
        """
        run the fork until it succeeds or asks to be split.

        raises UnsatisfiableError when the fork has no solution and
        ResolutionCancelled when the cancel event is set.
        """
        if not state.started:
            state.store.add(Incompatibility.root(state.root))
            state.next_package = state.root
            state.started = True

        try:
            while True:
                self._check_cancelled()
                # let sibling forks and prefetches make progress
                await asyncio.sleep(0)

                self._propagate(state, state.next_package)

                package = self._choose_package(state)
                if package is None:
                    state.status = ForkStatus.SUCCEEDED
                    logger.debug(
                        f"fork `{state.env.display_marker()}` solved after "
                        f"{state.solution.attempted_solutions} attempts"
                    )
                    return Succeeded(state)

                outcome = await self._choose_version(state, package)
                if isinstance(outcome, Split):
                    state.status = ForkStatus.SPLIT
                    return outcome
                state.next_package = outcome
        except UnsatisfiableError:
            state.status = ForkStatus.FAILED
            raise

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ResolutionCancelled()

    # propagation

    def _propagate(self, state: ForkState, package: Optional[PackageId]) -> None:
        """unit propagation from `package`, or from every known package when None."""
        changed = [package] if package is not None else state.store.packages()
        changed_set = set(changed)

        while changed:
            current = changed.pop()
            changed_set.discard(current)

            # newest first: learned incompatibilities tend to be the most useful
            for incompatibility in reversed(state.store.for_package(current)):
                result = self._propagate_incompatibility(state, incompatibility)
                if result is _CONFLICT:
                    root_cause, full = self._resolve_conflict(state, incompatibility)
                    changed.clear()
                    changed_set.clear()
                    if full:
                        changed.extend(state.store.packages())
                        changed_set.update(changed)
                    else:
                        derived = self._propagate_incompatibility(state, root_cause)
                        if isinstance(derived, PackageId):
                            changed.append(derived)
                            changed_set.add(derived)
                    break
                if result is not None and result not in changed_set:
                    changed.append(result)
                    changed_set.add(result)

    def _propagate_incompatibility(self, state: ForkState, incompatibility: Incompatibility):
        """
        derive from an almost satisfied incompatibility.

        returns the package a term was derived for, _CONFLICT when every term
        is already satisfied, and None when there is nothing to derive.
        """
        unsatisfied: Optional[Term] = None
        for term in incompatibility.terms:
            relation = state.solution.relation(term)
            if relation == SetRelation.DISJOINT:
                return None
            if relation == SetRelation.OVERLAPPING:
                if unsatisfied is not None:
                    return None
                unsatisfied = term

        if unsatisfied is None:
            return _CONFLICT

        logger.debug(f"derived: {unsatisfied.inverse}")
        state.solution.derive(unsatisfied.inverse, incompatibility.id)
        return unsatisfied.package

    def _resolve_conflict(self, state: ForkState, incompatibility: Incompatibility) -> Tuple[Incompatibility, bool]:
        """
        learn from a conflict and backjump.

        returns the root cause and whether the whole store has to be
        propagated again, which is the case after a ping-pong unwind.
        """
        levels = state.solution.decision_levels()
        decided = list(state.solution.decisions)
        current = decided[-1] if decided else None

        conflict = state.store.analyze_conflict(incompatibility, state.solution)
        logger.debug(f"backtracking to level {conflict.backtrack_level}")
        state.solution.backtrack(conflict.backtrack_level)

        full = False
        if current is not None:
            full = self._count_conflict(state, current, conflict.incompatibility, levels)
        return conflict.incompatibility, full

    def _count_conflict(
        self,
        state: ForkState,
        current: PackageId,
        incompatibility: Incompatibility,
        levels: Dict[PackageId, int],
    ) -> bool:
        current_level = levels.get(current)
        target: Optional[int] = None

        for other in incompatibility.packages:
            if other.name == current.name:
                continue
            other_level = levels.get(other)
            if other_level is not None and current_level is not None and other_level > current_level:
                earlier, later = current, other
            else:
                earlier, later = other, current

            if not state.prioritizer.record_conflict(earlier, later):
                continue
            earlier_level = levels.get(earlier)
            if earlier_level is None:
                continue
            level = max(1, earlier_level - 1)
            target = level if target is None else min(target, level)

        if target is None or target >= state.solution.decision_level:
            return False
        logger.debug(f"unwinding to level {target} after repeated conflicts around {current}")
        state.solution.backtrack(target)
        return True

    # package and version choice

    def _choose_package(self, state: ForkState) -> Optional[PackageId]:
        undecided = state.solution.undecided()
        return state.prioritizer.pick((package, state.solution.allowed(package)) for package in undecided)

    async def _choose_version(self, state: ForkState, package: PackageId) -> Union[PackageId, Split]:
        allowed = state.solution.allowed(package)

        if is_root_kind(package):
            dependencies = collect(package, ROOT_VERSION, self.project)
            return self._accept(state, package, ROOT_VERSION, dependencies)

        name = package.name
        try:
            infos = await self.index.versions(name)
        except MetadataUnavailable as e:
            return self._unavailable(state, package, allowed, e.reason or str(e))
        infos = self._filter_source(state, name, infos)

        broken = requires_python.malformed(infos)
        if broken:
            infos = [info for info in infos if info.parsed_version not in broken]
            if name not in state.malformed_checked:
                state.malformed_checked.add(name)
                for version, reason in sorted(broken.items()):
                    self._unavailable(state, package.base_package, VersionRange.singleton(version), reason)
                return package.base_package

        if name not in state.python_checked:
            result = self._check_requires_python(state, package, allowed, infos)
            if result is not None:
                return result

        excluded = state.python_excluded.get(name)
        selectable = allowed if excluded is None else allowed.difference(excluded)
        info = self.selector.select(
            name,
            selectable,
            infos,
            state.env.marker,
            explicit_prerelease=name in state.explicit_prereleases,
            direct=name in state.direct,
            siblings=name not in state.python_forked,
        )
        if info is None:
            logger.debug(f"no version of {package} in {allowed}")
            state.store.add(Incompatibility([Term(package, allowed, True)], IncompatibilityCause(CauseKind.NO_VERSIONS)))
            return package

        version = info.parsed_version
        if package.kind == PackageKind.MARKER:
            dependencies = collect(package, version, self.project)
        else:
            try:
                metadata = await self.index.metadata(name, info.version)
                dependencies = collect(package, version, self.project, metadata)
            except MetadataUnavailable as e:
                return self._unavailable(state, package, VersionRange.singleton(version), e.reason or str(e))
            except (RequirementError, MarkerSyntaxError) as e:
                return self._unavailable(state, package, VersionRange.singleton(version), str(e))

        state.chosen[package] = info
        return self._accept(state, package, version, dependencies)

    def _filter_source(self, state: ForkState, name: str, infos: List[VersionInfo]) -> List[VersionInfo]:
        url = state.urls.get(name)
        if url is not None:
            infos = [info for info in infos if info.url == url]
        index = state.indexes.get(name)
        if index is not None:
            infos = [info for info in infos if info.index == index]
        return infos

    def _check_requires_python(
        self, state: ForkState, package: PackageId, allowed: VersionRange, infos: List[VersionInfo]
    ) -> Union[PackageId, Split, None]:
        floor = state.env.python_floor

        if self.options.python_fork_strategy == PythonForkStrategy.FORK:
            best = self.selector.select(
                package.name, allowed, infos, state.env.marker,
                explicit_prerelease=package.name in state.explicit_prereleases,
                direct=package.name in state.direct,
                siblings=False,
            )
            if best is not None and not requires_python.is_compatible(best, floor):
                boundary = requires_python.fork_boundary(best, state.env.python_range)
                if boundary is not None:
                    markers = split_on_python(state.env, boundary)
                    if len(markers) > 1:
                        state.python_forked.add(package.name)
                        state.next_package = package
                        return Split(state, markers)

        state.python_checked.add(package.name)
        incompatibilities = requires_python.requires_python_incompatibilities(package.base_package, infos, floor)
        if not incompatibilities:
            return None

        state.python_excluded[package.name] = requires_python.excluded_versions(infos, floor)
        for incompatibility in incompatibilities:
            state.store.add(incompatibility)
        return package.base_package

    def _unavailable(self, state: ForkState, package: PackageId, versions: VersionRange, reason: str) -> PackageId:
        logger.warning(f"{package} {versions} is unavailable: {reason}")
        state.store.add(
            Incompatibility(
                [Term(package, versions, True)],
                IncompatibilityCause(CauseKind.UNAVAILABLE, detail=reason),
            )
        )
        return package

    def _accept(
        self, state: ForkState, package: PackageId, version: Version, dependencies: List[Dependency]
    ) -> Union[PackageId, Split]:
        markers = split(dependencies, state.env)
        if markers is not None:
            state.next_package = package
            return Split(state, markers)

        edges = to_edges(package, dependencies, state.env.marker)
        depender = VersionRange.singleton(version)
        conflict = False
        for edge in edges:
            target = edge.package
            state.prioritizer.observe(target)
            requirement = edge.requirement
            if requirement is not None:
                if requirement.url:
                    state.urls[target.name] = requirement.url
                    state.prioritizer.mark_url(target.name)
                if requirement.index:
                    state.indexes[target.name] = requirement.index
                if edge.explicit_prerelease:
                    state.explicit_prereleases.add(target.name)
            if is_root_kind(package) and target.has_version:
                state.direct.add(target.name)

            incompatibility = dependency_incompatibility(package, depender, target, edge.range)
            state.store.add(incompatibility)
            conflict = conflict or all(
                term.package == package or state.solution.satisfies(term) for term in incompatibility.terms
            )

        state.edges[package] = edges
        if conflict:
            # propagation from `package` finds the satisfied incompatibility
            logger.debug(f"not selecting {package} {version}: its dependencies conflict")
            return package

        logger.debug(f"selecting {package} {version}")
        state.solution.decide(package, version)
        self.reporter.on_decision(package, version)
        for edge in edges:
            if edge.package.has_version:
                self.index.prefetch(edge.package.name, edge.range)
        return package

    def warnings(self, state: ForkState, fork_marker: Optional[str] = None) -> List[NoUsableArtifact]:
        """artifact warnings for the versions a finished fork selected."""
        result = []
        for package, version in state.decisions.items():
            if package.kind != PackageKind.BASE:
                continue
            info = state.chosen.get(package)
            if info is None:
                continue
            warning = check_artifacts(package.name, info, self.tags, fork_marker)
            if warning is not None and warning not in result:
                result.append(warning)
        return result
