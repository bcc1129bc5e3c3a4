"""test suite for fork splitting and the fork tree."""
import pytest
import sys
from pathlib import Path

from packaging.version import Version

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from resolvent.algebra.range import VersionRange
from resolvent.markers import MarkerTree
from resolvent.resolution.dependencies import Dependency
from resolvent.resolution.forks import ForkEnvironment, ForkTree, initial_forks, split, split_on_python
from resolvent.resolution.packages import PackageId


def m(text):
    return MarkerTree.parse(text)


def dep(name, marker=""):
    return Dependency(PackageId.base(name), VersionRange.full(), m(marker))


UNIVERSAL = ForkEnvironment.root(VersionRange.full())
PY38 = ForkEnvironment.root(VersionRange.higher_than("3.8"))


class TestSplit:
    def test_unconditional_dependencies_do_not_split(self):
        assert split([dep("a"), dep("b")], UNIVERSAL) is None

    def test_single_marker_does_not_split(self):
        assert split([dep("a", "sys_platform == 'win32'")], UNIVERSAL) is None

    def test_same_name_under_two_markers(self):
        dependencies = [dep("a", "sys_platform == 'win32'"), dep("a", "sys_platform != 'win32'")]
        forks = split(dependencies, UNIVERSAL)
        assert set(forks) == {m("sys_platform == 'win32'"), m("sys_platform != 'win32'")}

    def test_forks_partition_the_environment(self):
        dependencies = [dep("a", "sys_platform == 'win32'"), dep("a", "sys_platform == 'linux'")]
        forks = split(dependencies, UNIVERSAL)
        assert len(forks) == 3

        covered = MarkerTree.FALSE
        for i, fork in enumerate(forks):
            covered = covered.or_(fork)
            for other in forks[i + 1:]:
                assert fork.is_disjoint(other)
        assert covered.is_true()

    def test_dependencies_disjoint_from_fork_are_ignored(self):
        env = UNIVERSAL.narrow(m("sys_platform == 'darwin'"))
        dependencies = [dep("a", "sys_platform == 'win32'"), dep("a", "sys_platform == 'linux'")]
        assert split(dependencies, env) is None

    def test_python_gated_requirement_gets_its_own_fork(self):
        forks = split([dep("numpy", "python_version >= '3.10'")], PY38)
        assert len(forks) == 2
        floors = sorted(f.python_range().lower_bound()[0] for f in forks)
        assert floors == [Version("3.8"), Version("3.10")]


class TestPythonSplit:
    def test_lower_part_first(self):
        below, above = split_on_python(PY38, Version("3.10"))
        assert below.python_range() == VersionRange.between("3.8", "3.10")
        assert above.python_range() == VersionRange.higher_than("3.10")

    def test_display_marker_drops_shared_bound(self):
        env = PY38.narrow(m("sys_platform == 'linux'"))
        assert env.display_marker() == m("sys_platform == 'linux'")
        assert env.python_floor == Version("3.8")


class TestInitialForks:
    def test_partition_is_kept(self):
        preferred = [m("sys_platform == 'win32'"), m("sys_platform != 'win32'")]
        assert len(initial_forks(preferred, UNIVERSAL)) == 2

    def test_overlapping_markers_are_ignored(self):
        preferred = [m("sys_platform == 'win32'"), m("os_name == 'nt'")]
        assert initial_forks(preferred, UNIVERSAL) is None

    def test_uncovered_environment_is_ignored(self):
        preferred = [m("sys_platform == 'win32'"), m("sys_platform == 'darwin'")]
        assert initial_forks(preferred, UNIVERSAL) is None

    def test_single_fork_is_no_plan(self):
        assert initial_forks([MarkerTree.TRUE], UNIVERSAL) is None


class TestForkTree:
    def test_paths_and_markers(self):
        tree = ForkTree()
        root = tree.add(None, MarkerTree.TRUE)
        win = tree.add(root, m("sys_platform == 'win32'"))
        other = tree.add(root, m("sys_platform != 'win32'"))
        nested = tree.add(other, m("os_name == 'posix'"))

        assert tree.path(root) == (0,)
        assert tree.path(win) == (0, 0)
        assert tree.path(other) == (0, 1)
        assert tree.path(nested) == (0, 1, 0)
        assert tree.effective_marker(nested) == m("sys_platform != 'win32' and os_name == 'posix'")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
