from pydantic import BaseModel, Field, field_validator
from typing import List, Dict, Optional
from packaging.requirements import InvalidRequirement, Requirement as PEP508Requirement
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import Version

from .errors import RequirementError
from ..algebra.range import VersionRange
from ..markers import MarkerTree


def _requires_python_range(requires_python: Optional[str]) -> VersionRange:
    if not requires_python:
        return VersionRange.full()
    try:
        return VersionRange.from_release_specifier(requires_python)
    except InvalidSpecifier as e:
        raise RequirementError(f"requires-python {requires_python}", str(e)) from e


class Requirement(BaseModel):
    """a single PEP 508 requirement, normalized."""
    name: str
    specifier: str = ""
    extras: List[str] = Field(default_factory=list)
    marker: Optional[str] = None
    url: Optional[str] = None
    index: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return canonicalize_name(value)

    @field_validator("extras")
    @classmethod
    def _normalize_extras(cls, value: List[str]) -> List[str]:
        return sorted({canonicalize_name(e) for e in value})

    @classmethod
    def from_pep508(cls, text: str, index: Optional[str] = None) -> "Requirement":
        try:
            parsed = PEP508Requirement(text)
        except InvalidRequirement as e:
            raise RequirementError(text, str(e)) from e
        return cls(
            name=parsed.name,
            specifier=str(parsed.specifier),
            extras=list(parsed.extras),
            marker=str(parsed.marker) if parsed.marker else None,
            url=parsed.url,
            index=index,
        )

    @property
    def specifier_set(self) -> SpecifierSet:
        try:
            return SpecifierSet(self.specifier)
        except InvalidSpecifier as e:
            raise RequirementError(str(self), str(e)) from e

    @property
    def version_range(self) -> VersionRange:
        return VersionRange.from_specifier(self.specifier_set)

    @property
    def marker_tree(self) -> MarkerTree:
        return MarkerTree.parse(self.marker)

    def __str__(self) -> str:
        text = self.name
        if self.extras:
            text += f"[{','.join(self.extras)}]"
        if self.url:
            text += f" @ {self.url}"
        elif self.specifier:
            text += self.specifier
        if self.marker:
            text += f" ; {self.marker}"
        return text


class VersionInfo(BaseModel):
    """one release of a package as the index lists it."""
    version: str
    requires_python: Optional[str] = None
    wheels: List[str] = Field(default_factory=list)
    sdist: bool = True
    yanked: bool = False
    url: Optional[str] = None
    index: Optional[str] = None

    @property
    def parsed_version(self) -> Version:
        return Version(self.version)

    @property
    def requires_python_range(self) -> VersionRange:
        return _requires_python_range(self.requires_python)


class PackageMetadata(BaseModel):
    """the core metadata of one release."""
    name: str
    version: str
    requires_dist: List[str] = Field(default_factory=list)
    requires_python: Optional[str] = None
    provides_extras: List[str] = Field(default_factory=list)

    @property
    def parsed_version(self) -> Version:
        return Version(self.version)

    @property
    def requirements(self) -> List[Requirement]:
        return [Requirement.from_pep508(text) for text in self.requires_dist]


class Project(BaseModel):
    """the top-level input to a resolution."""
    name: str = "project"
    requires_python: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)
    optional_dependencies: Dict[str, List[str]] = Field(default_factory=dict)
    extras: List[str] = Field(default_factory=list)
    dependency_groups: Dict[str, List[str]] = Field(default_factory=dict)
    groups: List[str] = Field(default_factory=list)
    # narrow a package wherever something else requires it
    constraints: List[str] = Field(default_factory=list)
    # replace every declared requirement on a package
    overrides: List[str] = Field(default_factory=list)

    @property
    def requires_python_range(self) -> VersionRange:
        return _requires_python_range(self.requires_python)

    @property
    def requirements(self) -> List[Requirement]:
        return [Requirement.from_pep508(text) for text in self.dependencies]

    def extra_requirements(self, extra: str) -> List[Requirement]:
        for name, requirements in self.optional_dependencies.items():
            if canonicalize_name(name) == canonicalize_name(extra):
                return [Requirement.from_pep508(text) for text in requirements]
        raise RequirementError(extra, f"project {self.name} has no extra named '{extra}'")

    def group_requirements(self, group: str) -> List[Requirement]:
        for name, requirements in self.dependency_groups.items():
            if canonicalize_name(name) == canonicalize_name(group):
                return [Requirement.from_pep508(text) for text in requirements]
        raise RequirementError(group, f"project {self.name} has no dependency group named '{group}'")

    def constraints_for(self, name: str) -> List[Requirement]:
        return _matching(self.constraints, name)

    def overrides_for(self, name: str) -> List[Requirement]:
        return _matching(self.overrides, name)


def _matching(texts: List[str], name: str) -> List[Requirement]:
    wanted = canonicalize_name(name)
    return [r for r in (Requirement.from_pep508(text) for text in texts) if r.name == wanted]
