"""Test suite for utility functions."""
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from resolvent.utils.hash import hash_locked_packages


class TestHashLockedPackages:
    def test_hash_consistency(self):
        """Test that the same packages produce the same hash."""
        packages = [{"name": "foo", "version": "1.0", "markers": []}]
        assert hash_locked_packages(packages) == hash_locked_packages(packages)

    def test_hash_different_versions(self):
        """Test that a different pin changes the hash."""
        a = [{"name": "foo", "version": "1.0", "markers": []}]
        b = [{"name": "foo", "version": "1.1", "markers": []}]
        assert hash_locked_packages(a) != hash_locked_packages(b)

    def test_order_does_not_matter(self):
        a = [
            {"name": "foo", "version": "1.0", "markers": ["sys_platform == 'win32'", "os_name == 'nt'"]},
            {"name": "bar", "version": "2.0", "markers": []},
        ]
        b = [
            {"name": "bar", "version": "2.0", "markers": []},
            {"name": "foo", "version": "1.0", "markers": ["os_name == 'nt'", "sys_platform == 'win32'"]},
        ]
        assert hash_locked_packages(a) == hash_locked_packages(b)

    def test_hash_format(self):
        """Test that hash is a hex string."""
        hash_val = hash_locked_packages([{"name": "foo", "version": "1.0"}])
        # Truncated hash produces 12 hex characters
        assert len(hash_val) == 12
        assert all(c in "0123456789abcdef" for c in hash_val)

    def test_rejects_non_list(self):
        with pytest.raises(TypeError):
            hash_locked_packages({"name": "foo"})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
