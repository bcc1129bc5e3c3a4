from typing import Dict, List, NamedTuple, Optional

from packaging.version import Version

from ..algebra.range import VersionRange
from ..algebra.term import SetRelation, Term
from ..domain.errors import InternalInvariantViolation
from .packages import PackageId


class Assignment(NamedTuple):
    """a decision (cause_id is None) or a derivation recorded in the partial solution."""
    term: Term
    decision_level: int
    index: int
    cause_id: Optional[int] = None
    version: Optional[Version] = None

    @property
    def package(self) -> PackageId:
        return self.term.package

    def is_decision(self) -> bool:
        return self.cause_id is None


class PartialSolution:
    """
    the solver's current guess: an ordered arena of assignments.

    decision levels form a gap-free increasing sequence; backtracking truncates
    the arena and recomputes the per-package summaries of what was removed.
    """

    def __init__(self):
        self._assignments: List[Assignment] = []
        self._decisions: Dict[PackageId, Version] = {}

        # intersection of all assignments for packages with a positive one
        self._positive: Dict[PackageId, Term] = {}
        # union of negative assignments for packages without a positive one
        self._negative: Dict[PackageId, Term] = {}

        self.attempted_solutions = 1
        self._backtracking = False

    @property
    def decisions(self) -> Dict[PackageId, Version]:
        return dict(self._decisions)

    @property
    def decision_level(self) -> int:
        return len(self._decisions)

    @property
    def assignments(self) -> List[Assignment]:
        return list(self._assignments)

    def undecided(self) -> List[PackageId]:
        """packages that must be selected but have no version yet."""
        return [package for package in self._positive if package not in self._decisions]

    def allowed(self, package: PackageId) -> Optional[VersionRange]:
        term = self._positive.get(package)
        return term.range if term is not None else None

    def decided_version(self, package: PackageId) -> Optional[Version]:
        return self._decisions.get(package)

    def decision_level_of(self, package: PackageId) -> Optional[int]:
        for assignment in self._assignments:
            if assignment.package == package and assignment.is_decision():
                return assignment.decision_level
        return None

    def decision_levels(self) -> Dict[PackageId, int]:
        return {a.package: a.decision_level for a in self._assignments if a.is_decision()}

    def decide(self, package: PackageId, version: Version) -> None:
        if self._backtracking:
            self.attempted_solutions += 1
        self._backtracking = False

        self._decisions[package] = version
        term = Term(package, VersionRange.singleton(version), True)
        self._assign(Assignment(term, self.decision_level, len(self._assignments), None, version))

    def derive(self, term: Term, cause_id: int) -> None:
        self._assign(Assignment(term, self.decision_level, len(self._assignments), cause_id))

    def _assign(self, assignment: Assignment) -> None:
        self._assignments.append(assignment)
        self._register(assignment)

    def backtrack(self, decision_level: int) -> None:
        """drop every assignment made above `decision_level`."""
        self._backtracking = True

        removed = set()
        while self._assignments and self._assignments[-1].decision_level > decision_level:
            assignment = self._assignments.pop()
            removed.add(assignment.package)
            if assignment.is_decision():
                del self._decisions[assignment.package]

        for package in removed:
            self._positive.pop(package, None)
            self._negative.pop(package, None)

        for assignment in self._assignments:
            if assignment.package in removed:
                self._register(assignment)

    def _register(self, assignment: Assignment) -> None:
        package = assignment.package
        old_positive = self._positive.get(package)
        if old_positive is not None:
            self._positive[package] = old_positive.intersect(assignment.term)
            return

        old_negative = self._negative.get(package)
        term = assignment.term if old_negative is None else assignment.term.intersect(old_negative)
        if term.positive:
            self._negative.pop(package, None)
            self._positive[package] = term
        else:
            self._negative[package] = term

    def satisfier(self, term: Term) -> Assignment:
        """the earliest assignment such that everything up to it satisfies `term`."""
        assigned: Optional[Term] = None
        for assignment in self._assignments:
            if assignment.package != term.package:
                continue
            assigned = assignment.term if assigned is None else assigned.intersect(assignment.term)
            if assigned.satisfies(term):
                return assignment
        raise InternalInvariantViolation(f"{term} is not satisfied by the partial solution")

    def satisfies(self, term: Term) -> bool:
        return self.relation(term) == SetRelation.SUBSET

    def relation(self, term: Term) -> SetRelation:
        positive = self._positive.get(term.package)
        if positive is not None:
            return positive.relation(term)
        negative = self._negative.get(term.package)
        if negative is None:
            return SetRelation.OVERLAPPING
        return negative.relation(term)

    def copy(self) -> "PartialSolution":
        clone = PartialSolution()
        clone._assignments = list(self._assignments)
        clone._decisions = dict(self._decisions)
        clone._positive = dict(self._positive)
        clone._negative = dict(self._negative)
        clone.attempted_solutions = self.attempted_solutions
        clone._backtracking = self._backtracking
        return clone
