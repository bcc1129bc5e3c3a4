"""test suite for dependency expansion."""
import pytest
import sys
from pathlib import Path

from packaging.version import Version

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from resolvent.algebra.range import VersionRange
from resolvent.domain.models import PackageMetadata, Project
from resolvent.markers import MarkerTree
from resolvent.resolution.dependencies import collect, to_edges
from resolvent.resolution.packages import PackageId, PackageKind


def m(text):
    return MarkerTree.parse(text)


METADATA = PackageMetadata(
    name="requests",
    version="2.31.0",
    requires_dist=[
        "idna>=2.5",
        "PySocks>=1.5.6 ; extra == 'socks'",
        "chardet<6 ; extra == 'use-chardet' and python_version >= '3.8'",
        "colorama ; sys_platform == 'win32'",
    ],
)


class TestCollect:
    def test_root(self):
        project = Project(
            dependencies=["requests[socks]>=2", "tomli ; python_version < '3.11'"],
            groups=["dev"],
            dependency_groups={"dev": ["pytest"]},
        )
        deps = collect(PackageId.root("project"), Version("0"), project)
        packages = [d.package for d in deps]
        assert PackageId.base("requests") in packages
        assert PackageId.with_extra("requests", "socks") in packages
        assert PackageId.with_group("project", "dev") in packages

        tomli = next(d for d in deps if d.package.name == "tomli")
        assert tomli.marker == m("python_full_version < '3.11'")

    def test_group(self):
        project = Project(dependency_groups={"dev": ["pytest>=8"]}, groups=["dev"])
        deps = collect(PackageId.with_group("project", "dev"), Version("0"), project)
        assert [(d.package.name, str(d.range)) for d in deps] == [("pytest", ">=8")]

    def test_base_package_skips_extras(self):
        deps = collect(PackageId.base("requests"), Version("2.31.0"), Project(), METADATA)
        assert [d.package.name for d in deps] == ["idna", "colorama"]

    def test_extra_adds_only_its_requirements(self):
        package = PackageId.with_extra("requests", "socks")
        deps = collect(package, Version("2.31.0"), Project(), METADATA)
        assert deps[0].package == PackageId.base("requests")
        assert deps[0].range == VersionRange.singleton("2.31.0")
        assert [d.package.name for d in deps[1:]] == ["pysocks"]

    def test_extra_keeps_remaining_marker(self):
        package = PackageId.with_extra("requests", "use_chardet")
        deps = collect(package, Version("2.31.0"), Project(), METADATA)
        chardet = deps[-1]
        assert chardet.package.name == "chardet"
        assert chardet.marker == m("python_full_version >= '3.8'")

    def test_marker_proxy_pins_base(self):
        package = PackageId.with_marker("colorama", m("sys_platform == 'win32'"))
        deps = collect(package, Version("0.4.6"), Project())
        assert len(deps) == 1
        assert deps[0].package == PackageId.base("colorama")
        assert deps[0].range == VersionRange.singleton("0.4.6")

    def test_explicit_prerelease(self):
        project = Project(dependencies=["foo>=2.0b1", "bar>=1"])
        deps = collect(PackageId.root("project"), Version("0"), project)
        flags = {d.package.name: d.explicit_prerelease for d in deps}
        assert flags == {"foo": True, "bar": False}


class TestConstraintsAndOverrides:
    def test_override_replaces_requirement(self):
        project = Project(overrides=["idna<3"])
        deps = collect(PackageId.base("requests"), Version("2.31.0"), project, METADATA)
        idna = [d for d in deps if d.package.name == "idna"]
        assert len(idna) == 1
        assert idna[0].range == VersionRange.from_specifier("<3")

    def test_override_marker_is_combined(self):
        project = Project(overrides=["colorama==0.4.6 ; python_version >= '3.8'"])
        deps = collect(PackageId.base("requests"), Version("2.31.0"), project, METADATA)
        colorama = next(d for d in deps if d.package.name == "colorama")
        assert colorama.marker == m("sys_platform == 'win32' and python_full_version >= '3.8'")
        assert colorama.range == VersionRange.from_specifier("==0.4.6")

    def test_override_that_never_applies_drops_requirement(self):
        project = Project(overrides=["colorama ; sys_platform == 'linux'"])
        deps = collect(PackageId.base("requests"), Version("2.31.0"), project, METADATA)
        assert [d.package.name for d in deps] == ["idna"]

    def test_override_applies_to_root_requirements(self):
        project = Project(dependencies=["foo>=2"], overrides=["foo<2"])
        deps = collect(PackageId.root("project"), Version("0"), project)
        assert [(d.package.name, d.range) for d in deps] == [("foo", VersionRange.from_specifier("<2"))]

    def test_constraint_only_where_required(self):
        project = Project(constraints=["idna<3.7", "numpy<2"])
        deps = collect(PackageId.base("requests"), Version("2.31.0"), project, METADATA)
        assert [d.package.name for d in deps] == ["idna", "idna", "colorama"]
        assert deps[1].range == VersionRange.from_specifier("<3.7")
        assert str(deps[1].requirement) == "idna<3.7"

    def test_constraint_marker_is_combined(self):
        project = Project(constraints=["colorama<0.5 ; python_version < '3.12'"])
        deps = collect(PackageId.base("requests"), Version("2.31.0"), project, METADATA)
        constraint = deps[-1]
        assert constraint.package == PackageId.base("colorama")
        assert constraint.marker == m("sys_platform == 'win32' and python_full_version < '3.12'")

    def test_constraint_on_extra_requirement_targets_base(self):
        project = Project(constraints=["pysocks<1.8"])
        deps = collect(PackageId.with_extra("requests", "socks"), Version("2.31.0"), project, METADATA)
        assert [d.package for d in deps[1:]] == [PackageId.base("pysocks"), PackageId.base("pysocks")]
        assert deps[-1].range == VersionRange.from_specifier("<1.8")


class TestToEdges:
    def test_scoping(self):
        source = PackageId.base("requests")
        deps = collect(source, Version("2.31.0"), Project(), METADATA)

        edges = to_edges(source, deps, MarkerTree.TRUE)
        colorama = next(e for e in edges if e.package.name == "colorama")
        assert colorama.package.kind == PackageKind.MARKER
        assert colorama.package.marker == m("sys_platform == 'win32'")

        edges = to_edges(source, deps, m("sys_platform == 'win32'"))
        colorama = next(e for e in edges if e.package.name == "colorama")
        assert colorama.package == PackageId.base("colorama")

        edges = to_edges(source, deps, m("sys_platform == 'linux'"))
        assert [e.package.name for e in edges] == ["idna"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
