import asyncio
import json
from abc import abstractmethod
import logging
from pathlib import Path
from typing import List, Optional

import httpx
from packaging.utils import canonicalize_name
from pydantic import ValidationError

from .client import RegistryClient
from ..domain.errors import MetadataUnavailable
from ..domain.models import PackageMetadata, VersionInfo

logger = logging.getLogger(__name__)


class IndexRegistry(RegistryClient):
    """
    a registry backed by a single JSON index document.

    the document maps package names to their releases:
    {pkg: {"versions": {v: {"requires_dist": [...], "requires_python": ...,
    "wheels": [...], "sdist": true, "yanked": false}}}}
    """

    def __init__(self):
        self._index_task: Optional[asyncio.Task] = None

    @abstractmethod
    async def _load_index(self) -> dict:
        """Load the whole index document."""

    async def _get_index(self) -> dict:
        if self._index_task is None:
            self._index_task = asyncio.ensure_future(self._load_index())
        return await asyncio.shield(self._index_task)

    async def _get_package(self, package_name: str) -> dict:
        try:
            index = await self._get_index()
        except MetadataUnavailable as e:
            raise MetadataUnavailable(package_name, reason=e.reason) from e

        wanted = canonicalize_name(package_name)
        for name, data in index.items():
            if canonicalize_name(name) == wanted:
                return data
        return {}

    async def get_versions(self, package_name: str) -> List[VersionInfo]:
        pkg_data = await self._get_package(package_name)
        versions = []
        for version, data in pkg_data.get("versions", {}).items():
            if not isinstance(data, dict):
                logger.warning(f"skipping {package_name} {version}: release entry is not an object")
                continue
            try:
                info = VersionInfo(
                    version=version,
                    requires_python=data.get("requires_python"),
                    wheels=data.get("wheels", []),
                    sdist=data.get("sdist", True),
                    yanked=data.get("yanked", False),
                    url=data.get("url"),
                    index=data.get("index"),
                )
            except ValidationError as e:
                logger.warning(f"skipping {package_name} {version}: {e.error_count()} invalid field(s)")
                continue
            versions.append(info)
        return versions

    async def get_package_metadata(self, package_name: str, version: str) -> PackageMetadata:
        pkg_data = await self._get_package(package_name)
        versions = pkg_data.get("versions", {})
        if version not in versions:
            raise MetadataUnavailable(package_name, version, "not listed in the index")

        data = versions[version]
        if not isinstance(data, dict):
            raise MetadataUnavailable(package_name, version, "release entry is not an object")
        try:
            return PackageMetadata(
                name=canonicalize_name(package_name),
                version=version,
                requires_dist=data.get("requires_dist", []),
                requires_python=data.get("requires_python"),
                provides_extras=data.get("provides_extras", []),
            )
        except ValidationError as e:
            raise MetadataUnavailable(package_name, version, f"malformed metadata: {e.error_count()} invalid field(s)") from e


class LocalIndexRegistry(IndexRegistry):
    """an index document on disk."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)

    async def _load_index(self) -> dict:
        try:
            with open(self.path, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise MetadataUnavailable("index", reason=f"cannot read {self.path}: {e}") from e


class HttpIndexRegistry(IndexRegistry):
    """an index document served at `{base_url}/index.json`."""

    def __init__(
        self,
        base_url: str,
        retries: int = 3,
        backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.backoff = backoff
        self.client = client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)

    async def _load_index(self) -> dict:
        url = f"{self.base_url}/index.json"
        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                response = await self.client.get(url)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                # client errors will not go away by asking again
                if e.response.status_code < 500:
                    raise MetadataUnavailable("index", reason=f"{url} returned {e.response.status_code}") from e
                last_error = e
            except (httpx.TransportError, ValueError) as e:
                last_error = e

            logger.warning(f"fetching {url} failed (attempt {attempt}/{self.retries}): {last_error}")
            if attempt < self.retries:
                await asyncio.sleep(self.backoff * attempt)

        raise MetadataUnavailable("index", reason=f"giving up on {url}: {last_error}")

    async def close(self) -> None:
        await self.client.aclose()


def make_registry(location: str) -> IndexRegistry:
    """pick a registry for a path or an http(s) URL."""
    if location.startswith(("http://", "https://")):
        return HttpIndexRegistry(location)
    return LocalIndexRegistry(Path(location).expanduser())
