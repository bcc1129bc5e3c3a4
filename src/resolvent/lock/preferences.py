"""
lock preferences: versions from an earlier resolution that the selector
tries first. they are hints only; a preference outside the allowed range is
ignored.
"""
from typing import Dict, List, Optional

from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel

from ..markers import MarkerTree
from .lockfile import Lockfile


class Preference(BaseModel):
    name: str
    version: str
    marker: Optional[str] = None  # the fork this pin was resolved for

    @property
    def parsed_version(self) -> Version:
        return Version(self.version)

    @property
    def marker_tree(self) -> MarkerTree:
        return MarkerTree.parse(self.marker)


class Preferences:
    """lock preferences indexed by package name."""

    def __init__(self, preferences: Optional[List[Preference]] = None):
        self._by_name: Dict[str, List[Preference]] = {}
        for preference in preferences or []:
            self._by_name.setdefault(canonicalize_name(preference.name), []).append(preference)

    def __len__(self) -> int:
        return sum(len(p) for p in self._by_name.values())

    def __bool__(self) -> bool:
        return bool(self._by_name)

    def ordered(self, name: str, fork_marker: MarkerTree) -> List[Version]:
        """
        preferred versions for `name` in the order they should be tried:
        pins from forks overlapping this one, then universal pins, then the rest.
        """
        matching, universal, other = [], [], []
        for preference in self._by_name.get(name, []):
            try:
                version = preference.parsed_version
            except InvalidVersion:
                continue
            marker = preference.marker_tree
            if marker.is_true():
                universal.append(version)
            elif not marker.is_disjoint(fork_marker):
                matching.append(version)
            else:
                other.append(version)

        ordered = []
        for version in matching + universal + other:
            if version not in ordered:
                ordered.append(version)
        return ordered


def load_lock_preferences(lockfile: Lockfile) -> Preferences:
    """turn every locked package (and each of its fork markers) into a preference."""
    preferences = []
    for package in lockfile.packages:
        if not package.markers:
            preferences.append(Preference(name=package.name, version=package.version))
            continue
        for marker in package.markers:
            preferences.append(Preference(name=package.name, version=package.version, marker=marker))
    return Preferences(preferences)


def preferred_forks(lockfile: Lockfile) -> List[MarkerTree]:
    """the fork markers of an earlier resolution, used to seed the fork plan."""
    return [MarkerTree.parse(marker) for marker in lockfile.fork_markers]
