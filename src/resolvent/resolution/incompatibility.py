"""
incompatibilities and the per-fork store that learns them.

an incompatibility is a set of terms that cannot all hold at once. the store
is append-only for the lifetime of a fork; conflict analysis combines an
incompatibility satisfied by the partial solution with the causes of its
satisfiers until it finds the root cause, and reports how far to backjump.
"""
import logging
from enum import Enum, auto
from typing import Dict, Iterable, List, NamedTuple, Optional, TYPE_CHECKING

from ..algebra.range import VersionRange
from ..algebra.term import Term
from ..domain.errors import InternalInvariantViolation, UnsatisfiableError
from .packages import PackageId, PackageKind

if TYPE_CHECKING:
    from .partial_solution import PartialSolution

logger = logging.getLogger(__name__)


class CauseKind(Enum):
    ROOT = auto()
    DEPENDENCY = auto()
    NO_VERSIONS = auto()
    REQUIRES_PYTHON = auto()
    UNAVAILABLE = auto()
    CONFLICT = auto()


class IncompatibilityCause(NamedTuple):
    kind: CauseKind
    conflict: Optional["Incompatibility"] = None
    other: Optional["Incompatibility"] = None
    detail: Optional[str] = None


def describe_package(package: PackageId) -> str:
    if package.is_root:
        return "your project"
    return str(package)


def describe_term(term: Term, with_range: bool = True) -> str:
    name = describe_package(term.package)
    if term.package.is_root or not with_range or term.range.is_full():
        return name
    return f"{name}{term.range}" if str(term.range)[0] in "=<>!~" else f"{name} {term.range}"


class Incompatibility:
    """a set of terms, at most one per package, that must not all be satisfied."""

    def __init__(self, terms: Iterable[Term], cause: IncompatibilityCause):
        merged: Dict[PackageId, Term] = {}
        for term in terms:
            if term.package in merged:
                term = merged[term.package].intersect(term)
            merged[term.package] = term

        # a derived incompatibility mentioning the root alongside other packages
        # says nothing more without it; the root is always selected
        if cause.kind == CauseKind.CONFLICT and len(merged) > 1:
            for package, term in list(merged.items()):
                if package.is_root and term.positive:
                    del merged[package]

        self.terms: List[Term] = list(merged.values())
        self.cause = cause
        self.id: Optional[int] = None

    @classmethod
    def root(cls, root: PackageId) -> "Incompatibility":
        return cls([Term(root, VersionRange.full(), False)], IncompatibilityCause(CauseKind.ROOT))

    @property
    def packages(self) -> List[PackageId]:
        return [term.package for term in self.terms]

    def get(self, package: PackageId) -> Optional[Term]:
        for term in self.terms:
            if term.package == package:
                return term
        return None

    def is_failure(self) -> bool:
        if not self.terms:
            return True
        return len(self.terms) == 1 and self.terms[0].positive and self.terms[0].package.is_root

    def is_derived(self) -> bool:
        return self.cause.kind == CauseKind.CONFLICT

    def external_causes(self) -> List["Incompatibility"]:
        """the leaves of the derivation tree below this incompatibility."""
        if not self.is_derived():
            return [self]
        return self.cause.conflict.external_causes() + self.cause.other.external_causes()

    def __str__(self) -> str:
        kind = self.cause.kind
        if kind == CauseKind.ROOT:
            return "your project is required"
        if kind == CauseKind.DEPENDENCY and len(self.terms) == 2:
            depender, dependee = self.terms
            if not depender.positive:
                depender, dependee = dependee, depender
            return f"{describe_term(depender)} depends on {describe_term(dependee)}"
        if kind == CauseKind.NO_VERSIONS:
            term = self.terms[0]
            if term.range.is_full():
                return f"there are no versions of {describe_package(term.package)}"
            return f"there is no version of {describe_term(term)}"
        if kind == CauseKind.REQUIRES_PYTHON:
            term = self.terms[0]
            return f"{describe_term(term)} requires Python {self.cause.detail}"
        if kind == CauseKind.UNAVAILABLE:
            term = self.terms[0]
            reason = f": {self.cause.detail}" if self.cause.detail else ""
            return f"{describe_term(term)} is unavailable{reason}"

        if self.is_failure():
            return "version solving failed"
        if len(self.terms) == 1:
            term = self.terms[0]
            verb = "is forbidden" if term.positive else "is mandatory"
            return f"{describe_term(term)} {verb}"
        if len(self.terms) == 2:
            positive = [t for t in self.terms if t.positive]
            negative = [t for t in self.terms if not t.positive]
            if len(positive) == 1 and len(negative) == 1:
                return f"{describe_term(positive[0])} depends on {describe_term(negative[0])}"
            if len(positive) == 2:
                return f"{describe_term(positive[0])} and {describe_term(positive[1])} are incompatible"
        positive = [describe_term(t) for t in self.terms if t.positive]
        negative = [describe_term(t) for t in self.terms if not t.positive]
        if positive and negative:
            return f"if {', '.join(positive)} then {', '.join(negative)}"
        if positive:
            return f"{', '.join(positive)} are incompatible"
        return f"one of {', '.join(negative)} must be true"

    def __repr__(self) -> str:
        return f"Incompatibility({self.id}, {self.cause.kind.name}, {[str(t) for t in self.terms]})"


class Conflict(NamedTuple):
    """the learned root cause and the decision level to backjump to."""
    incompatibility: Incompatibility
    backtrack_level: int
    learned: bool


class IncompatibilityStore:
    """
    an append-only arena of incompatibilities for one fork.

    ids are arena indices. children of a split start from a copy of the
    parent's store and diverge from there.
    """

    def __init__(self):
        self._items: List[Incompatibility] = []
        self._by_package: Dict[PackageId, List[int]] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, incompatibility_id: int) -> Incompatibility:
        return self._items[incompatibility_id]

    def add(self, incompatibility: Incompatibility) -> int:
        if incompatibility.id is not None and incompatibility.id < len(self._items) \
                and self._items[incompatibility.id] is incompatibility:
            return incompatibility.id
        incompatibility_id = len(self._items)
        incompatibility.id = incompatibility_id
        self._items.append(incompatibility)
        for term in incompatibility.terms:
            self._by_package.setdefault(term.package, []).append(incompatibility_id)
        logger.debug(f"fact: {incompatibility}")
        return incompatibility_id

    def for_package(self, package: PackageId) -> List[Incompatibility]:
        return [self._items[i] for i in self._by_package.get(package, [])]

    def packages(self) -> List[PackageId]:
        """every package mentioned by some incompatibility, in first-mention order."""
        return list(self._by_package)

    def copy(self) -> "IncompatibilityStore":
        clone = IncompatibilityStore()
        clone._items = list(self._items)
        clone._by_package = {package: list(ids) for package, ids in self._by_package.items()}
        return clone

    def analyze_conflict(self, incompatibility: Incompatibility, solution: "PartialSolution") -> Conflict:
        """
        derive the root cause of a satisfied incompatibility.

        walks the assignment history backwards, resolving the incompatibility
        against the cause of its most recent satisfier until that satisfier is
        a decision or the only assignment at its level. raises
        UnsatisfiableError when the learned incompatibility rules out the root.
        """
        logger.debug(f"conflict: {incompatibility}")
        learned = False

        while not incompatibility.is_failure():
            most_recent_term = None
            most_recent_satisfier = None
            difference = None

            # level 1 is where the root was decided; stopping there keeps the
            # root close to the final conclusion in failure reports
            previous_satisfier_level = 1

            for term in incompatibility.terms:
                satisfier = solution.satisfier(term)

                if most_recent_satisfier is None:
                    most_recent_term = term
                    most_recent_satisfier = satisfier
                elif most_recent_satisfier.index < satisfier.index:
                    previous_satisfier_level = max(previous_satisfier_level, most_recent_satisfier.decision_level)
                    most_recent_term = term
                    most_recent_satisfier = satisfier
                    difference = None
                else:
                    previous_satisfier_level = max(previous_satisfier_level, satisfier.decision_level)

                if most_recent_term is term:
                    # the satisfier may only satisfy the term together with earlier assignments
                    difference = most_recent_satisfier.term.difference(most_recent_term)
                    if difference.range.is_empty():
                        difference = None
                    else:
                        previous_satisfier_level = max(
                            previous_satisfier_level,
                            solution.satisfier(difference.inverse).decision_level,
                        )

            if most_recent_satisfier is None:
                raise InternalInvariantViolation(f"conflict without satisfier: {incompatibility!r}")

            if previous_satisfier_level < most_recent_satisfier.decision_level or most_recent_satisfier.cause_id is None:
                if learned:
                    self.add(incompatibility)
                return Conflict(incompatibility, previous_satisfier_level, learned)

            cause = self._items[most_recent_satisfier.cause_id]
            new_terms = [t for t in incompatibility.terms if t is not most_recent_term]
            new_terms.extend(t for t in cause.terms if t.package != most_recent_satisfier.term.package)
            if difference is not None:
                new_terms.append(difference.inverse)

            incompatibility = Incompatibility(
                new_terms,
                IncompatibilityCause(CauseKind.CONFLICT, conflict=incompatibility, other=cause),
            )
            learned = True

            partially = "" if difference is None else " partially"
            logger.debug(f"! {most_recent_term} is{partially} satisfied by {most_recent_satisfier.term}")
            logger.debug(f"! which is caused by \"{cause}\"")
            logger.debug(f"! thus: {incompatibility}")

        if learned:
            self.add(incompatibility)
        raise UnsatisfiableError(incompatibility)


def dependency_incompatibility(
    depender: PackageId, depender_range: VersionRange, dependee: PackageId, dependee_range: VersionRange
) -> Incompatibility:
    """`depender in depender_range` requires `dependee in dependee_range`."""
    return Incompatibility(
        [Term(depender, depender_range, True), Term(dependee, dependee_range, False)],
        IncompatibilityCause(CauseKind.DEPENDENCY),
    )


def is_root_kind(package: PackageId) -> bool:
    return package.kind in (PackageKind.ROOT, PackageKind.GROUP)
