import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from packaging.version import InvalidVersion

from ..algebra.range import VersionRange
from ..domain.models import PackageMetadata, VersionInfo
from ..registry.client import RegistryClient

logger = logging.getLogger(__name__)


class PackageIndex:
    """
    at-most-once access to the registry for one resolution.

    every key gets a single task, shared by all forks. prefetches start those
    tasks early without waiting; whoever needs the data awaits the task.
    """

    def __init__(self, registry: RegistryClient):
        self.registry = registry
        self._versions: Dict[str, asyncio.Task] = {}
        self._metadata: Dict[Tuple[str, str], asyncio.Task] = {}
        self._prefetches: List[asyncio.Task] = []

    def _versions_task(self, name: str) -> asyncio.Task:
        task = self._versions.get(name)
        if task is None:
            task = asyncio.ensure_future(self._fetch_versions(name))
            self._versions[name] = task
        return task

    def _metadata_task(self, name: str, version: str) -> asyncio.Task:
        key = (name, version)
        task = self._metadata.get(key)
        if task is None:
            task = asyncio.ensure_future(self.registry.get_package_metadata(name, version))
            self._metadata[key] = task
        return task

    async def _fetch_versions(self, name: str) -> List[VersionInfo]:
        infos = await self.registry.get_versions(name)
        valid = []
        for info in infos:
            try:
                info.parsed_version
            except InvalidVersion:
                logger.debug(f"skipping {name} {info.version!r}: not a PEP 440 version")
                continue
            valid.append(info)
        return sorted(valid, key=lambda i: i.parsed_version)

    async def versions(self, name: str) -> List[VersionInfo]:
        """all listed releases of `name`, oldest first."""
        # shielded: one fork being cancelled must not cancel the fetch for the others
        return await asyncio.shield(self._versions_task(name))

    async def metadata(self, name: str, version: str) -> PackageMetadata:
        return await asyncio.shield(self._metadata_task(name, version))

    def prefetch(self, name: str, allowed: Optional[VersionRange] = None) -> None:
        """start fetching `name` (and the metadata of its newest allowed release) in the background."""
        if name in self._versions and allowed is None:
            return
        task = asyncio.ensure_future(self._prefetch(name, allowed))
        task.add_done_callback(self._retrieve)
        self._prefetches.append(task)

    async def _prefetch(self, name: str, allowed: Optional[VersionRange]) -> None:
        infos = await asyncio.shield(self._versions_task(name))
        candidates = [i for i in infos if allowed is None or allowed.contains(i.parsed_version)]
        if candidates:
            self._metadata_task(name, candidates[-1].version).add_done_callback(self._retrieve)

    @staticmethod
    def _retrieve(task: asyncio.Task) -> None:
        # failures surface again when the data is actually awaited
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"prefetch failed: {task.exception()}")

    def cancel_pending(self) -> None:
        """cancel every fetch that has not finished yet."""
        pending = [t for t in list(self._versions.values()) + list(self._metadata.values()) + self._prefetches if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug(f"cancelled {len(pending)} pending fetches")
        self._prefetches = []

    @property
    def fetched(self) -> int:
        return sum(1 for t in self._metadata.values() if t.done() and not t.cancelled())
