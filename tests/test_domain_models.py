"""test suite for domain models."""
import pytest
from packaging.version import Version
from packaging.specifiers import SpecifierSet
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from resolvent.algebra.range import VersionRange
from resolvent.domain.errors import MetadataUnavailable, NoUsableArtifact, RequirementError
from resolvent.domain.models import PackageMetadata, Project, Requirement, VersionInfo
from resolvent.markers import MarkerTree


class TestRequirement:
    def test_requirement_creation(self):
        req = Requirement(name="Test_Package")
        assert req.name == "test-package"
        assert req.specifier == ""
        assert req.version_range.is_full()

    def test_from_pep508(self):
        req = Requirement.from_pep508("Requests[Socks,security]>=2.0,<3 ; python_version >= '3.8'")
        assert req.name == "requests"
        assert req.extras == ["security", "socks"]
        assert req.specifier_set == SpecifierSet(">=2.0,<3")
        assert req.marker_tree == MarkerTree.parse("python_full_version >= '3.8'")

    def test_url_requirement(self):
        req = Requirement.from_pep508("foo @ https://example.com/foo-1.0.tar.gz")
        assert req.url == "https://example.com/foo-1.0.tar.gz"
        assert str(req) == "foo @ https://example.com/foo-1.0.tar.gz"

    def test_specifier_set_property(self):
        req = Requirement(name="test-package", specifier=">=1.0.0,<2.0.0")
        assert Version("1.5.0") in req.specifier_set
        assert Version("2.5.0") not in req.specifier_set
        assert req.version_range == VersionRange.from_specifier(">=1.0.0,<2.0.0")

    def test_invalid_requirement(self):
        with pytest.raises(RequirementError):
            Requirement.from_pep508("foo[")

    def test_invalid_specifier(self):
        with pytest.raises(RequirementError):
            Requirement(name="foo", specifier=">>1").specifier_set

    def test_str(self):
        req = Requirement.from_pep508("foo[bar]>=1.0 ; sys_platform == 'win32'")
        assert str(req) == 'foo[bar]>=1.0 ; sys_platform == "win32"'


class TestVersionInfo:
    def test_defaults(self):
        info = VersionInfo(version="1.2.3")
        assert info.parsed_version == Version("1.2.3")
        assert info.sdist
        assert not info.yanked
        assert info.requires_python_range.is_full()

    def test_requires_python_range(self):
        info = VersionInfo(version="1.0", requires_python=">=3.9")
        assert info.requires_python_range == VersionRange.higher_than("3.9")

    def test_invalid_requires_python(self):
        info = VersionInfo(version="1.0", requires_python=">=3.x")
        with pytest.raises(RequirementError):
            info.requires_python_range


class TestPackageMetadata:
    def test_requirements(self):
        metadata = PackageMetadata(name="flask", version="3.0.0", requires_dist=["Werkzeug>=3.0", "click>=8.1.3"])
        assert metadata.parsed_version == Version("3.0.0")
        assert [r.name for r in metadata.requirements] == ["werkzeug", "click"]


class TestProject:
    def test_defaults(self):
        project = Project()
        assert project.name == "project"
        assert project.requirements == []
        assert project.requires_python_range.is_full()

    def test_extras_and_groups(self):
        project = Project(
            optional_dependencies={"Socks": ["pysocks"]},
            dependency_groups={"dev": ["pytest>=8"]},
        )
        assert [r.name for r in project.extra_requirements("socks")] == ["pysocks"]
        assert [str(r) for r in project.group_requirements("Dev")] == ["pytest>=8"]

    def test_unknown_extra(self):
        with pytest.raises(RequirementError):
            Project().extra_requirements("nope")

    def test_unknown_group(self):
        with pytest.raises(RequirementError):
            Project().group_requirements("nope")

    def test_constraints_and_overrides_by_name(self):
        project = Project(
            constraints=["Foo<2", "bar>=1"],
            overrides=["foo==1.5 ; sys_platform == 'linux'"],
        )
        assert [str(r) for r in project.constraints_for("foo")] == ["foo<2"]
        assert [r.specifier for r in project.overrides_for("FOO")] == ["==1.5"]
        assert project.overrides_for("bar") == []


class TestErrors:
    def test_metadata_unavailable_message(self):
        error = MetadataUnavailable("foo", "1.0", "HTTP 500")
        assert str(error) == "Metadata for foo==1.0 is unavailable: HTTP 500"

    def test_no_usable_artifact(self):
        warning = NoUsableArtifact("foo", "1.0", "no wheels", "sys_platform == 'win32'")
        assert str(warning) == "foo==1.0 has no usable artifact (for `sys_platform == 'win32'`): no wheels"
        assert warning == NoUsableArtifact("foo", "1.0", "no wheels", "sys_platform == 'win32'")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
