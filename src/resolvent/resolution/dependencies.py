"""
expansion of a chosen (package, version) into dependency edges.

expansion happens in two steps. `collect` turns metadata (or the project,
for the root) into marker-qualified dependencies; the fork manager may split
on those. `to_edges` then scopes them to one fork: dependencies disjoint from
the fork are dropped, dependencies that always apply target the package
itself, and partially applicable ones go through a marker proxy.
"""
import logging
from typing import List, NamedTuple, Optional

from packaging.version import Version

from ..algebra.range import VersionRange
from ..domain.models import PackageMetadata, Project, Requirement
from ..markers import MarkerTree
from .packages import PackageId, PackageKind

logger = logging.getLogger(__name__)


class Dependency(NamedTuple):
    """a dependency before it is scoped to a fork."""
    package: PackageId
    range: VersionRange
    marker: MarkerTree
    requirement: Optional[Requirement] = None

    @property
    def url(self) -> Optional[str]:
        return self.requirement.url if self.requirement is not None else None

    @property
    def index(self) -> Optional[str]:
        return self.requirement.index if self.requirement is not None else None

    @property
    def explicit_prerelease(self) -> bool:
        return _explicit_prerelease(self.requirement)


class DependencyEdge(NamedTuple):
    """a dependency scoped to one fork; `marker` is where it applies inside the fork."""
    source: PackageId
    package: PackageId
    range: VersionRange
    marker: MarkerTree
    requirement: Optional[Requirement] = None

    @property
    def explicit_prerelease(self) -> bool:
        return _explicit_prerelease(self.requirement)


def _explicit_prerelease(requirement: Optional[Requirement]) -> bool:
    """whether the specifier itself names a pre-release (`>=2.0b1`)."""
    if requirement is None or not requirement.specifier:
        return False
    return bool(requirement.specifier_set.prereleases)


def _from_requirement(requirement: Requirement, marker: MarkerTree) -> List[Dependency]:
    versions = requirement.version_range if requirement.specifier else VersionRange.full()
    result = [Dependency(PackageId.base(requirement.name), versions, marker, requirement)]
    for extra in requirement.extras:
        result.append(Dependency(PackageId.with_extra(requirement.name, extra), versions, marker, requirement))
    return result


def _expand(requirement: Requirement, marker: MarkerTree, project: Project) -> List[Dependency]:
    """`requirement` after project overrides replace it and project constraints narrow it."""
    replaced = [(requirement, marker)]
    overrides = project.overrides_for(requirement.name)
    if overrides:
        replaced = []
        for override in overrides:
            combined = marker.and_(override.marker_tree.with_extra(None))
            if not combined.is_false():
                logger.debug(f"overriding {requirement} with {override}")
                replaced.append((override, combined))

    result: List[Dependency] = []
    for declared, declared_marker in replaced:
        result.extend(_from_requirement(declared, declared_marker))
        for constraint in project.constraints_for(declared.name):
            combined = declared_marker.and_(constraint.marker_tree.with_extra(None))
            if combined.is_false():
                continue
            versions = constraint.version_range if constraint.specifier else VersionRange.full()
            result.append(Dependency(PackageId.base(declared.name), versions, combined, constraint))
    return result


def _pin(package: PackageId, version: Version) -> Dependency:
    return Dependency(package.base_package, VersionRange.singleton(version), MarkerTree.TRUE)


def collect(
    package: PackageId,
    version: Version,
    project: Project,
    metadata: Optional[PackageMetadata] = None,
) -> List[Dependency]:
    """the dependencies of `package` at `version`, with their markers."""
    result: List[Dependency] = []

    if package.kind == PackageKind.ROOT:
        for requirement in project.requirements:
            result.extend(_expand(requirement, requirement.marker_tree.with_extra(None), project))
        for extra in project.extras:
            for requirement in project.extra_requirements(extra):
                result.extend(_expand(requirement, requirement.marker_tree.with_extra(extra), project))
        for group in project.groups:
            result.append(Dependency(PackageId.with_group(package.name, group), VersionRange.full(), MarkerTree.TRUE))

    elif package.kind == PackageKind.GROUP:
        for requirement in project.group_requirements(package.group):
            result.extend(_expand(requirement, requirement.marker_tree.with_extra(None), project))

    elif package.kind == PackageKind.MARKER:
        result.append(_pin(package, version))

    elif package.kind == PackageKind.BASE:
        for requirement in metadata.requirements if metadata is not None else []:
            marker = requirement.marker_tree.with_extra(None)
            if not marker.is_false():
                result.extend(_expand(requirement, marker, project))

    elif package.kind == PackageKind.EXTRA:
        result.append(_pin(package, version))
        for requirement in metadata.requirements if metadata is not None else []:
            tree = requirement.marker_tree
            if not tree.mentions_extra():
                continue
            marker = tree.with_extra(package.extra)
            # only what the extra adds on top of the base requirements
            if marker.is_false() or marker.implies(tree.with_extra(None)):
                continue
            result.extend(_expand(requirement, marker, project))

    # a package never depends on itself
    return [d for d in result if d.package != package]


def to_edges(source: PackageId, dependencies: List[Dependency], fork_marker: MarkerTree) -> List[DependencyEdge]:
    """scope dependencies to the fork described by `fork_marker`."""
    edges = []
    for dependency in dependencies:
        marker = dependency.marker
        if marker.is_disjoint(fork_marker):
            logger.debug(f"dropping {dependency.package} from {source}: `{marker}` never applies here")
            continue

        target = dependency.package
        if not fork_marker.implies(marker):
            if target.kind == PackageKind.BASE:
                target = PackageId.with_marker(target.name, marker)
            elif target.kind == PackageKind.EXTRA:
                target = PackageId(target.name, PackageKind.EXTRA, extra=target.extra, marker=marker)

        edges.append(DependencyEdge(source, target, dependency.range, marker, dependency.requirement))
    return edges
