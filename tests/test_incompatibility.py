"""test suite for incompatibilities, conflict analysis and failure reports."""
import pytest
import sys
from pathlib import Path

from packaging.version import Version

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from resolvent.algebra.range import VersionRange
from resolvent.algebra.term import Term
from resolvent.domain.errors import UnsatisfiableError
from resolvent.resolution.incompatibility import (
    CauseKind,
    Incompatibility,
    IncompatibilityCause,
    IncompatibilityStore,
    dependency_incompatibility,
)
from resolvent.resolution.packages import PackageId
from resolvent.resolution.partial_solution import PartialSolution
from resolvent.resolution.report import FailureReporter, collect_trace


ROOT = PackageId.root("project")
FOO = PackageId.base("foo")
BAR = PackageId.base("bar")


def no_versions(package, versions):
    return Incompatibility([Term(package, versions, True)], IncompatibilityCause(CauseKind.NO_VERSIONS))


class TestIncompatibility:
    def test_terms_for_the_same_package_are_merged(self):
        incompatibility = Incompatibility(
            [
                Term(FOO, VersionRange.higher_than("1.0"), True),
                Term(FOO, VersionRange.strictly_lower_than("2.0"), True),
            ],
            IncompatibilityCause(CauseKind.NO_VERSIONS),
        )
        assert len(incompatibility.terms) == 1
        assert incompatibility.terms[0].range == VersionRange.between("1.0", "2.0")

    def test_root_is_dropped_from_derived_incompatibilities(self):
        incompatibility = Incompatibility(
            [Term(ROOT, VersionRange.full(), True), Term(FOO, VersionRange.full(), True)],
            IncompatibilityCause(CauseKind.CONFLICT),
        )
        assert incompatibility.packages == [FOO]

    def test_dependency_text(self):
        incompatibility = dependency_incompatibility(
            ROOT, VersionRange.singleton("0"), FOO, VersionRange.from_specifier(">=2.0")
        )
        assert str(incompatibility) == "your project depends on foo>=2.0"

    def test_dependency_between_packages(self):
        incompatibility = dependency_incompatibility(
            FOO, VersionRange.singleton("1.0"), BAR, VersionRange.full()
        )
        assert str(incompatibility) == "foo==1.0 depends on bar"

    def test_no_versions_text(self):
        assert str(no_versions(FOO, VersionRange.full())) == "there are no versions of foo"
        assert str(no_versions(FOO, VersionRange.higher_than("2.0"))) == "there is no version of foo>=2.0"

    def test_requires_python_text(self):
        incompatibility = Incompatibility(
            [Term(FOO, VersionRange.higher_than("2.0"), True)],
            IncompatibilityCause(CauseKind.REQUIRES_PYTHON, detail=">=3.10"),
        )
        assert str(incompatibility) == "foo>=2.0 requires Python >=3.10"

    def test_unavailable_text(self):
        incompatibility = Incompatibility(
            [Term(FOO, VersionRange.singleton("1.0"), True)],
            IncompatibilityCause(CauseKind.UNAVAILABLE, detail="index unreachable"),
        )
        assert str(incompatibility) == "foo==1.0 is unavailable: index unreachable"

    def test_root_incompatibility(self):
        incompatibility = Incompatibility.root(ROOT)
        assert str(incompatibility) == "your project is required"
        assert not incompatibility.is_failure()


class TestStore:
    def test_ids_are_arena_indices(self):
        store = IncompatibilityStore()
        first = store.add(Incompatibility.root(ROOT))
        second = store.add(no_versions(FOO, VersionRange.full()))
        assert (first, second) == (0, 1)
        assert store[1].packages == [FOO]
        assert len(store) == 2

    def test_adding_twice_is_a_no_op(self):
        store = IncompatibilityStore()
        incompatibility = no_versions(FOO, VersionRange.full())
        store.add(incompatibility)
        store.add(incompatibility)
        assert len(store) == 1

    def test_for_package_and_packages(self):
        store = IncompatibilityStore()
        store.add(dependency_incompatibility(ROOT, VersionRange.singleton("0"), FOO, VersionRange.full()))
        store.add(no_versions(FOO, VersionRange.full()))
        assert len(store.for_package(FOO)) == 2
        assert store.packages() == [ROOT, FOO]

    def test_copy_diverges(self):
        store = IncompatibilityStore()
        store.add(Incompatibility.root(ROOT))
        clone = store.copy()
        clone.add(no_versions(FOO, VersionRange.full()))
        assert len(store) == 1
        assert store.for_package(FOO) == []


class TestConflictAnalysis:
    @pytest.fixture
    def failing(self):
        """the project needs foo>=2.0, and there is none."""
        store = IncompatibilityStore()
        root_id = store.add(Incompatibility.root(ROOT))
        dependency = dependency_incompatibility(
            ROOT, VersionRange.singleton("0"), FOO, VersionRange.from_specifier(">=2.0")
        )
        dependency_id = store.add(dependency)
        missing = no_versions(FOO, VersionRange.from_specifier(">=2.0"))
        store.add(missing)

        solution = PartialSolution()
        solution.derive(Term(ROOT, VersionRange.full(), True), root_id)
        solution.decide(ROOT, Version("0"))
        solution.derive(Term(FOO, VersionRange.from_specifier(">=2.0"), True), dependency_id)
        return store, solution, missing

    def test_unsatisfiable(self, failing):
        store, solution, missing = failing
        with pytest.raises(UnsatisfiableError) as info:
            store.analyze_conflict(missing, solution)

        error = info.value
        assert error.incompatibility.is_failure()
        assert error.report() == (
            "Because there is no version of foo>=2.0 and your project depends on foo>=2.0, "
            "version solving failed."
        )

    def test_trace_lists_causes_first(self, failing):
        store, solution, missing = failing
        with pytest.raises(UnsatisfiableError) as info:
            store.analyze_conflict(missing, solution)

        trace = info.value.trace
        assert trace[-1] is info.value.incompatibility
        assert {i.cause.kind for i in trace[:-1]} == {CauseKind.NO_VERSIONS, CauseKind.DEPENDENCY}

    def test_split_prefix(self, failing):
        store, solution, missing = failing
        with pytest.raises(UnsatisfiableError) as info:
            store.analyze_conflict(missing, solution)

        error = UnsatisfiableError(info.value.incompatibility, fork_marker="sys_platform == 'win32'")
        assert error.report().startswith("Resolution failed for the split `sys_platform == 'win32'`:")

    def test_backjump_to_earlier_level(self):
        """a conflict caused by an earlier decision backjumps below the latest one."""
        store = IncompatibilityStore()
        root_id = store.add(Incompatibility.root(ROOT))
        foo_dep = store.add(dependency_incompatibility(ROOT, VersionRange.singleton("0"), FOO, VersionRange.full()))
        bar_dep = store.add(dependency_incompatibility(ROOT, VersionRange.singleton("0"), BAR, VersionRange.full()))
        clash = Incompatibility(
            [Term(FOO, VersionRange.singleton("2.0"), True), Term(BAR, VersionRange.full(), True)],
            IncompatibilityCause(CauseKind.DEPENDENCY),
        )
        store.add(clash)

        solution = PartialSolution()
        solution.derive(Term(ROOT, VersionRange.full(), True), root_id)
        solution.decide(ROOT, Version("0"))
        solution.derive(Term(FOO, VersionRange.full(), True), foo_dep)
        solution.derive(Term(BAR, VersionRange.full(), True), bar_dep)
        solution.decide(FOO, Version("2.0"))

        conflict = store.analyze_conflict(clash, solution)
        assert conflict.backtrack_level == 1
        assert not conflict.learned


class TestReporter:
    def test_external_failure(self):
        incompatibility = no_versions(FOO, VersionRange.full())
        assert FailureReporter(incompatibility).report() == (
            "Because there are no versions of foo, version solving failed."
        )

    def test_collect_trace_of_external(self):
        incompatibility = no_versions(FOO, VersionRange.full())
        assert collect_trace(incompatibility) == [incompatibility]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
