from enum import Enum, auto
from typing import Any

from .range import VersionRange


class SetRelation(Enum):
    SUBSET = auto()
    DISJOINT = auto()
    OVERLAPPING = auto()


class Term:
    """
    a statement about one package: it is selected with a version inside a
    range (positive), or it is not selected with a version inside the range
    (negative). a negative term is also satisfied when the package is not
    selected at all.
    """

    __slots__ = ("package", "range", "positive")

    def __init__(self, package: Any, range: VersionRange, positive: bool = True):
        self.package = package
        self.range = range
        self.positive = positive

    @property
    def inverse(self) -> "Term":
        return Term(self.package, self.range, not self.positive)

    def is_empty(self) -> bool:
        """whether the term admits no selected version at all."""
        return self.positive and self.range.is_empty()

    def intersect(self, other: "Term") -> "Term":
        if other.package != self.package:
            raise ValueError(f"{other} should refer to {self.package}")

        if self.positive and other.positive:
            return Term(self.package, self.range.intersection(other.range), True)
        if self.positive:
            return Term(self.package, self.range.difference(other.range), True)
        if other.positive:
            return Term(self.package, other.range.difference(self.range), True)
        return Term(self.package, self.range.union(other.range), False)

    def difference(self, other: "Term") -> "Term":
        return self.intersect(other.inverse)

    def satisfies(self, other: "Term") -> bool:
        """whether every state allowed by self is allowed by other."""
        return self.package == other.package and self.relation(other) == SetRelation.SUBSET

    def relation(self, other: "Term") -> SetRelation:
        """how the states allowed by self relate to those allowed by other."""
        if other.package != self.package:
            raise ValueError(f"{other} should refer to {self.package}")

        if other.positive:
            if self.positive:
                if self.range.subset_of(other.range):
                    return SetRelation.SUBSET
                if self.range.is_disjoint(other.range):
                    return SetRelation.DISJOINT
                return SetRelation.OVERLAPPING
            # self still allows "not selected", which other rules out
            if other.range.subset_of(self.range):
                return SetRelation.DISJOINT
            return SetRelation.OVERLAPPING

        if self.positive:
            if self.range.is_disjoint(other.range):
                return SetRelation.SUBSET
            if self.range.subset_of(other.range):
                return SetRelation.DISJOINT
            return SetRelation.OVERLAPPING
        # both allow "not selected", so they are never disjoint
        if other.range.subset_of(self.range):
            return SetRelation.SUBSET
        return SetRelation.OVERLAPPING

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Term):
            return NotImplemented
        return (self.package, self.range, self.positive) == (other.package, other.range, other.positive)

    def __hash__(self) -> int:
        return hash((self.package, self.range, self.positive))

    def __str__(self) -> str:
        prefix = "" if self.positive else "not "
        return f"{prefix}{self.package} {self.range}"

    def __repr__(self) -> str:
        return f"Term({self.package!r}, {str(self.range)!r}, positive={self.positive})"
