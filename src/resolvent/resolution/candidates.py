import logging
from typing import Dict, List, Optional

from packaging.utils import canonicalize_name
from packaging.version import Version

from ..algebra.range import VersionRange
from ..config import PrereleaseMode, ResolutionStrategy, ResolverOptions
from ..domain.models import VersionInfo
from ..lock.preferences import Preferences
from ..markers import MarkerTree

logger = logging.getLogger(__name__)


class CandidateSelector:
    """
    picks the version to try for a package.

    order: lock preferences (those for an overlapping fork first), versions
    already chosen by a finished sibling fork, the installed version, then
    the resolution strategy over the remaining versions.

    sibling choices are skipped for a package whose requires-python caused
    the split; each side of such a fork keeps its own best version.
    """

    def __init__(
        self,
        options: ResolverOptions,
        preferences: Optional[Preferences] = None,
        sibling_preferences: Optional[Dict[str, Version]] = None,
    ):
        self.options = options
        self.preferences = preferences or Preferences()
        # shared with the orchestrator, which fills it as forks finish
        self.sibling_preferences = sibling_preferences if sibling_preferences is not None else {}
        self.installed = {canonicalize_name(k): Version(v) for k, v in options.installed.items()}

    def select(
        self,
        name: str,
        allowed: VersionRange,
        versions: List[VersionInfo],
        fork_marker: MarkerTree,
        explicit_prerelease: bool = False,
        direct: bool = False,
        siblings: bool = True,
    ) -> Optional[VersionInfo]:
        by_version = {v.parsed_version: v for v in versions}

        for preferred in self.preferences.ordered(name, fork_marker):
            info = by_version.get(preferred)
            if info is not None and self._acceptable(info, allowed):
                logger.debug(f"using locked {name}=={preferred}")
                return info

        sibling = self.sibling_preferences.get(name) if siblings else None
        if sibling is not None:
            info = by_version.get(sibling)
            if info is not None and self._acceptable(info, allowed):
                logger.debug(f"using {name}=={sibling} from a sibling fork")
                return info

        installed = self.installed.get(name)
        if installed is not None:
            info = by_version.get(installed)
            if info is not None and self._acceptable(info, allowed):
                logger.debug(f"using installed {name}=={installed}")
                return info

        candidates = [v for v in versions if self._acceptable(v, allowed)]
        candidates = self._apply_prerelease_policy(candidates, explicit_prerelease)
        if not candidates:
            return None

        strategy = self.options.resolution_strategy
        if strategy == ResolutionStrategy.LOWEST or (strategy == ResolutionStrategy.LOWEST_DIRECT and direct):
            return min(candidates, key=lambda v: v.parsed_version)
        return max(candidates, key=lambda v: v.parsed_version)

    def _acceptable(self, info: VersionInfo, allowed: VersionRange) -> bool:
        version = info.parsed_version
        if not allowed.contains(version):
            return False
        if info.yanked and allowed.as_singleton() != version:
            return False
        return True

    def _apply_prerelease_policy(self, candidates: List[VersionInfo], explicit: bool) -> List[VersionInfo]:
        mode = self.options.prerelease
        if mode == PrereleaseMode.ALLOW:
            return candidates
        stable = [v for v in candidates if not v.parsed_version.is_prerelease]
        if mode == PrereleaseMode.DISALLOW:
            return stable
        if explicit or not stable:
            return candidates
        return stable
