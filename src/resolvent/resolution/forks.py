"""
forks: independent sub-resolutions over slices of marker space.

a fork is split when one package declares several requirements on the same
name under different markers. the slices are the non-empty regions the
referenced markers carve out of the current fork; slices that end up with
identical requirements are merged back together.
"""
import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

from packaging.version import Version

from ..algebra.range import VersionRange
from ..markers import MarkerTree, PYTHON_VERSION
from .dependencies import Dependency

logger = logging.getLogger(__name__)


class ForkEnvironment(NamedTuple):
    """the marker slice a fork covers and the python range it must support."""
    marker: MarkerTree
    requires_python: VersionRange

    @classmethod
    def root(cls, requires_python: VersionRange) -> "ForkEnvironment":
        marker = MarkerTree.TRUE if requires_python.is_full() else MarkerTree.python(requires_python)
        return cls(marker, requires_python)

    @property
    def python_range(self) -> VersionRange:
        return self.requires_python.intersection(self.marker.python_range())

    @property
    def python_floor(self) -> Optional[Version]:
        bound = self.python_range.lower_bound()
        return bound[0] if bound is not None else None

    def narrow(self, marker: MarkerTree) -> "ForkEnvironment":
        return ForkEnvironment(self.marker.and_(marker), self.requires_python)

    def display_marker(self) -> MarkerTree:
        """the marker without the bounds every fork shares through requires-python."""
        return self.marker.simplify_python(self.requires_python)


class ForkNode(NamedTuple):
    index: int
    parent: Optional[int]
    marker: MarkerTree
    ordinal: int


class ForkTree:
    """every fork ever created, parents referenced by index."""

    def __init__(self):
        self.nodes: List[ForkNode] = []
        self._children: Dict[Optional[int], int] = {}

    def add(self, parent: Optional[int], marker: MarkerTree) -> int:
        ordinal = self._children.get(parent, 0)
        self._children[parent] = ordinal + 1
        index = len(self.nodes)
        self.nodes.append(ForkNode(index, parent, marker, ordinal))
        return index

    def path(self, index: int) -> Tuple[int, ...]:
        ordinals = []
        current: Optional[int] = index
        while current is not None:
            node = self.nodes[current]
            ordinals.append(node.ordinal)
            current = node.parent
        return tuple(reversed(ordinals))

    def effective_marker(self, index: int) -> MarkerTree:
        marker = MarkerTree.TRUE
        current: Optional[int] = index
        while current is not None:
            node = self.nodes[current]
            marker = marker.and_(node.marker)
            current = node.parent
        return marker


def _raises_python_floor(marker: MarkerTree, env: ForkEnvironment) -> bool:
    """whether the marker only applies above the lowest python of the fork."""
    narrowed = env.python_range.intersection(marker.python_range())
    if narrowed.is_empty():
        return False
    floor = env.python_floor
    bound = narrowed.lower_bound()
    if bound is None:
        return False
    return floor is None or bound[0] > floor


def split(dependencies: List[Dependency], env: ForkEnvironment) -> Optional[List[MarkerTree]]:
    """
    the slices to split `env` into, or None when no split is needed.

    dependencies are grouped by name. a name required once (or always under
    the same marker) does not split, unless that marker raises the python
    floor. otherwise every distinct marker cuts each current slice into the
    part it covers and the part it does not.
    """
    fork = env.marker
    by_name: Dict[str, List[Dependency]] = {}
    for dependency in dependencies:
        if dependency.marker.is_disjoint(fork):
            continue
        by_name.setdefault(dependency.package.name, []).append(dependency)

    slices = [fork]
    for name in sorted(by_name):
        group = by_name[name]
        markers: List[MarkerTree] = []
        for dependency in group:
            if dependency.marker not in markers:
                markers.append(dependency.marker)

        if len(markers) == 1:
            marker = markers[0]
            if fork.implies(marker) or not _raises_python_floor(marker, env):
                continue
            # a single python-gated requirement still gets a fork of its own
            markers = [MarkerTree.python(marker.python_range())]

        for marker in markers:
            if fork.implies(marker):
                continue
            next_slices = []
            for current in slices:
                inside = current.and_(marker)
                outside = current.and_(marker.negate())
                if inside.is_false() or outside.is_false():
                    next_slices.append(current)
                else:
                    next_slices.extend([inside, outside])
            slices = next_slices

    if len(slices) == 1:
        return None

    # merge slices that carry exactly the same dependencies
    merged: Dict[Tuple[int, ...], MarkerTree] = {}
    for current in slices:
        key = tuple(i for i, d in enumerate(dependencies) if not d.marker.is_disjoint(current))
        merged[key] = merged[key].or_(current) if key in merged else current

    if len(merged) == 1:
        return None
    result = list(merged.values())
    logger.info(f"splitting `{env.display_marker()}` into {len(result)} forks")
    return result


def split_on_python(env: ForkEnvironment, boundary: Version) -> List[MarkerTree]:
    """split a fork at `python_full_version >= boundary`, lower part first."""
    below = env.marker.and_(MarkerTree.python(VersionRange.strictly_lower_than(boundary)))
    above = env.marker.and_(MarkerTree.python(VersionRange.higher_than(boundary)))
    logger.info(f"splitting `{env.display_marker()}` at {PYTHON_VERSION} >= '{boundary}'")
    return [m for m in (below, above) if not m.is_false()]


def initial_forks(preferred: List[MarkerTree], env: ForkEnvironment) -> Optional[List[MarkerTree]]:
    """
    the fork plan of an earlier resolution, if it still partitions `env`.

    the markers must be pairwise disjoint and together cover the whole
    environment; otherwise the plan is ignored and forks are rediscovered.
    """
    if len(preferred) < 2:
        return None

    slices = [env.marker.and_(marker) for marker in preferred]
    slices = [s for s in slices if not s.is_false()]
    for i, a in enumerate(slices):
        for b in slices[i + 1:]:
            if not a.is_disjoint(b):
                logger.warning("ignoring preferred forks: they overlap")
                return None

    covered = MarkerTree.FALSE
    for s in slices:
        covered = covered.or_(s)
    if not env.marker.implies(covered):
        logger.warning("ignoring preferred forks: they leave part of the environment uncovered")
        return None
    return slices if len(slices) > 1 else None
