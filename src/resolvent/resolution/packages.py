from enum import Enum
from typing import NamedTuple, Optional

from packaging.utils import canonicalize_name

from ..markers import MarkerTree


class PackageKind(Enum):
    ROOT = "root"
    BASE = "base"
    EXTRA = "extra"
    GROUP = "group"
    MARKER = "marker"


class PackageId(NamedTuple):
    """
    a node in the solver's dependency graph.

    besides real distributions (BASE) the solver works with virtual packages:
    `name[extra]` pulls in an extra, `name:group` a dependency group, and
    `name ; marker` is a proxy used when a requirement only applies to part
    of the current fork. every virtual package pins its base to the same
    version, so the assignment stays one version per name.
    """
    name: str
    kind: PackageKind = PackageKind.BASE
    extra: Optional[str] = None
    group: Optional[str] = None
    marker: Optional[MarkerTree] = None

    @classmethod
    def root(cls, name: str) -> "PackageId":
        return cls(name, PackageKind.ROOT)

    @classmethod
    def base(cls, name: str) -> "PackageId":
        return cls(canonicalize_name(name), PackageKind.BASE)

    @classmethod
    def with_extra(cls, name: str, extra: str) -> "PackageId":
        return cls(canonicalize_name(name), PackageKind.EXTRA, extra=canonicalize_name(extra))

    @classmethod
    def with_group(cls, name: str, group: str) -> "PackageId":
        return cls(name, PackageKind.GROUP, group=canonicalize_name(group))

    @classmethod
    def with_marker(cls, name: str, marker: MarkerTree) -> "PackageId":
        return cls(canonicalize_name(name), PackageKind.MARKER, marker=marker)

    @property
    def is_root(self) -> bool:
        return self.kind == PackageKind.ROOT

    @property
    def is_virtual(self) -> bool:
        return self.kind in (PackageKind.EXTRA, PackageKind.MARKER)

    @property
    def has_version(self) -> bool:
        """whether the package is backed by a real distribution on the index."""
        return self.kind in (PackageKind.BASE, PackageKind.EXTRA, PackageKind.MARKER)

    @property
    def base_package(self) -> "PackageId":
        return PackageId(self.name, PackageKind.BASE)

    def sort_key(self) -> tuple:
        return (self.name, self.kind.value, self.extra or "", self.group or "", str(self.marker or ""))

    def __str__(self) -> str:
        if self.kind == PackageKind.EXTRA:
            if self.marker is not None:
                return f"{self.name}[{self.extra}] ; {self.marker}"
            return f"{self.name}[{self.extra}]"
        if self.kind == PackageKind.GROUP:
            return f"{self.name}:{self.group}"
        if self.kind == PackageKind.MARKER:
            return f"{self.name} ; {self.marker}"
        return self.name
