import logging
from enum import IntEnum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..algebra.range import VersionRange
from .packages import PackageId, PackageKind

logger = logging.getLogger(__name__)

CONFLICT_THRESHOLD = 5


class PriorityBand(IntEnum):
    """lower bands are decided first."""
    ROOT = 0
    URL = 1
    SINGLETON = 2
    CONFLICT = 3
    DEFAULT = 4


class Prioritizer:
    """
    orders undecided packages for one fork.

    packages are keyed by (band, conflict order, first seen). the conflict
    order only matters inside the CONFLICT band, where a package that was
    decided later in a repeated conflict is moved ahead of its partner.
    """

    def __init__(self, conflict_threshold: int = CONFLICT_THRESHOLD):
        self.conflict_threshold = conflict_threshold
        self._first_seen: Dict[PackageId, int] = {}
        self._url_names: Set[str] = set()
        self._conflict_order: Dict[str, int] = {}
        self._pair_counts: Dict[FrozenSet[str], int] = {}

    def observe(self, package: PackageId) -> None:
        if package not in self._first_seen:
            self._first_seen[package] = len(self._first_seen)

    def mark_url(self, name: str) -> None:
        self._url_names.add(name)

    def is_conflicting(self, name: str) -> bool:
        return name in self._conflict_order

    def band(self, package: PackageId, allowed: Optional[VersionRange] = None) -> PriorityBand:
        if package.kind in (PackageKind.ROOT, PackageKind.GROUP):
            return PriorityBand.ROOT
        if package.name in self._url_names:
            return PriorityBand.URL
        if allowed is not None and allowed.as_singleton() is not None:
            return PriorityBand.SINGLETON
        if package.name in self._conflict_order:
            return PriorityBand.CONFLICT
        return PriorityBand.DEFAULT

    def key(self, package: PackageId, allowed: Optional[VersionRange] = None) -> Tuple[int, int, int]:
        self.observe(package)
        band = self.band(package, allowed)
        order = self._conflict_order.get(package.name, 0) if band == PriorityBand.CONFLICT else 0
        return (int(band), order, self._first_seen[package])

    def pick(self, candidates: Iterable[Tuple[PackageId, VersionRange]]) -> Optional[PackageId]:
        best = None
        best_key = None
        for package, allowed in candidates:
            key = self.key(package, allowed)
            if best_key is None or key < best_key:
                best, best_key = package, key
        return best

    def record_conflict(self, earlier: PackageId, later: PackageId) -> bool:
        """
        count one conflict between two packages; `earlier` was decided before `later`.

        returns True when the pair just reached the threshold and both were
        moved into the CONFLICT band.
        """
        if earlier.name == later.name:
            return False
        if any(p.kind in (PackageKind.ROOT, PackageKind.GROUP) for p in (earlier, later)):
            return False

        pair = frozenset((earlier.name, later.name))
        count = self._pair_counts.get(pair, 0) + 1
        self._pair_counts[pair] = count
        if count != self.conflict_threshold:
            return False

        # the later package goes first from now on, its partner right after
        base = -2 * (len(self._conflict_order) + 1)
        self._conflict_order[later.name] = min(self._conflict_order.get(later.name, 0), base)
        self._conflict_order.setdefault(earlier.name, base + 1)
        logger.debug(f"{later.name} and {earlier.name} conflicted {count} times, prioritizing {later.name}")
        return True

    def conflict_count(self, a: str, b: str) -> int:
        return self._pair_counts.get(frozenset((a, b)), 0)

    def copy(self) -> "Prioritizer":
        clone = Prioritizer(self.conflict_threshold)
        clone._first_seen = dict(self._first_seen)
        clone._url_names = set(self._url_names)
        clone._conflict_order = dict(self._conflict_order)
        clone._pair_counts = dict(self._pair_counts)
        return clone

    def conflicting_packages(self) -> List[str]:
        return sorted(self._conflict_order, key=self._conflict_order.get)
