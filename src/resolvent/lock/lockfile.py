"""the persisted resolution: (name, version, fork markers) triples."""
import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..utils.hash import hash_locked_packages

logger = logging.getLogger(__name__)

LOCKFILE_VERSION = 1


class LockedPackage(BaseModel):
    """one pinned package; an empty marker list means every fork."""
    name: str
    version: str
    markers: List[str] = Field(default_factory=list)


class Lockfile(BaseModel):
    version: int = LOCKFILE_VERSION
    requires_python: Optional[str] = None
    fork_markers: List[str] = Field(default_factory=list)
    packages: List[LockedPackage] = Field(default_factory=list)
    content_hash: Optional[str] = None

    @classmethod
    def empty(cls) -> "Lockfile":
        return cls()

    def compute_hash(self) -> str:
        return hash_locked_packages([p.model_dump() for p in self.packages])

    def get(self, name: str) -> List[LockedPackage]:
        return [p for p in self.packages if p.name == name]


class LockfileStore:
    """handles lockfile persistence to JSON."""

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path

    def exists(self) -> bool:
        return self.lock_path.exists()

    def load(self) -> Lockfile:
        """load the lockfile; a missing or corrupted file reads as empty."""
        if not self.lock_path.exists():
            return Lockfile.empty()

        try:
            with open(self.lock_path, "r") as f:
                data = json.load(f)
            return Lockfile(**data)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(f"ignoring unreadable lockfile {self.lock_path}: {e}")
            return Lockfile.empty()

    def save(self, lockfile: Lockfile) -> None:
        """save the lockfile with stable ordering so diffs stay small."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)

        lockfile.packages.sort(key=lambda p: (p.name, p.version))
        lockfile.content_hash = lockfile.compute_hash()
        with open(self.lock_path, "w") as f:
            json.dump(lockfile.model_dump(), f, indent=2, sort_keys=True)
            f.write("\n")
