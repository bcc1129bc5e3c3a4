from abc import ABC, abstractmethod
from typing import List

from ..domain.models import PackageMetadata, VersionInfo

class RegistryClient(ABC):
    """
    where releases and their metadata come from.

    implementations retry on their own; once they give up they raise
    MetadataUnavailable. an unknown package is not an error: it simply has
    no versions.
    """

    @abstractmethod
    async def get_versions(self, package_name: str) -> List[VersionInfo]:
        """Get the listed releases of a package."""
        pass

    @abstractmethod
    async def get_package_metadata(self, package_name: str, version: str) -> PackageMetadata:
        """Get core metadata for a specific package version."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass
