"""
requires-python handling.

only the lower bound of a release's requires-python is checked against the
lowest python a fork must support. upper caps are never propagated: a
release capped at `<3.13` is still usable for a project supporting 3.9+.
"""
import logging
from typing import Dict, List, Optional

from packaging.version import Version

from ..algebra.range import VersionRange
from ..algebra.term import Term
from ..domain.errors import RequirementError
from ..domain.models import VersionInfo
from .incompatibility import CauseKind, Incompatibility, IncompatibilityCause
from .packages import PackageId

logger = logging.getLogger(__name__)


def malformed(infos: List[VersionInfo]) -> Dict[Version, str]:
    """releases whose requires-python does not parse, with the reason."""
    result = {}
    for info in infos:
        try:
            info.requires_python_range
        except RequirementError:
            result[info.parsed_version] = f"invalid requires-python '{info.requires_python}'"
    return result


def lower_bound(versions: VersionRange) -> Optional[Version]:
    bound = versions.lower_bound()
    return bound[0] if bound is not None else None


def is_compatible(info: VersionInfo, floor: Optional[Version]) -> bool:
    """whether the release installs on the fork's lowest python."""
    if floor is None:
        return True
    bound = info.requires_python_range.lower_bound()
    if bound is None:
        return True
    version, inclusive = bound
    return version < floor or (version == floor and inclusive)


def incompatible_ranges(infos: List[VersionInfo], floor: Optional[Version]) -> Dict[str, VersionRange]:
    """
    group python-incompatible releases by their requires-python.

    each release covers [itself, next listed release), so runs of
    consecutive incompatible releases collapse into one interval.
    """
    ordered = sorted(infos, key=lambda i: i.parsed_version)
    ranges: Dict[str, VersionRange] = {}
    for position, info in enumerate(ordered):
        if is_compatible(info, floor):
            continue
        start = info.parsed_version
        if position + 1 < len(ordered):
            covered = VersionRange.between(start, ordered[position + 1].parsed_version)
        else:
            covered = VersionRange.higher_than(start)
        key = info.requires_python or ""
        ranges[key] = ranges.get(key, VersionRange.empty()).union(covered)
    return ranges


def requires_python_incompatibilities(
    package: PackageId, infos: List[VersionInfo], floor: Optional[Version]
) -> List[Incompatibility]:
    result = []
    for requires_python, versions in sorted(incompatible_ranges(infos, floor).items()):
        result.append(
            Incompatibility(
                [Term(package, versions, True)],
                IncompatibilityCause(CauseKind.REQUIRES_PYTHON, detail=requires_python),
            )
        )
    return result


def excluded_versions(infos: List[VersionInfo], floor: Optional[Version]) -> VersionRange:
    result = VersionRange.empty()
    for versions in incompatible_ranges(infos, floor).values():
        result = result.union(versions)
    return result


def fork_boundary(info: VersionInfo, fork_python: VersionRange) -> Optional[Version]:
    """
    where to split a fork so that `info` becomes usable in its upper part.

    None unless the release's requires-python lower bound lies strictly
    inside the python range the fork covers.
    """
    bound = info.requires_python_range.lower_bound()
    if bound is None:
        return None
    boundary = bound[0]
    fork_floor = lower_bound(fork_python)
    if fork_floor is not None and boundary <= fork_floor:
        return None
    if not fork_python.contains(boundary):
        return None
    logger.debug(f"{info.version} needs python >={boundary}, fork covers {fork_python}")
    return boundary
