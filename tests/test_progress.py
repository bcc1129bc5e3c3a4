"""test suite for progress manager."""
import asyncio
import pytest
from pathlib import Path
import sys
from unittest.mock import Mock, patch

from packaging.version import Version

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from resolvent.domain.models import PackageMetadata, Project, VersionInfo
from resolvent.markers import MarkerTree
from resolvent.registry.client import RegistryClient
from resolvent.resolution.packages import PackageId
from resolvent.resolution.resolver import Resolver
from resolvent.ui.progress import ProgressManager, ProgressReporter, _DummyProgress


class TestProgressManager:
    """test progress manager functionality."""

    def test_initialization_default(self):
        """test progress manager initializes with default console."""
        pm = ProgressManager()
        assert pm.console is not None

    def test_initialization_custom_console(self):
        """test progress manager accepts custom console."""
        from rich.console import Console
        custom_console = Console()
        pm = ProgressManager(console=custom_console)
        assert pm.console is custom_console

    def test_tty_detection_interactive(self):
        """test progress is enabled in interactive terminal."""
        with patch('sys.stdout.isatty', return_value=True):
            pm = ProgressManager()
            assert pm._enabled is True

    def test_tty_detection_non_interactive(self):
        """test progress is disabled in non-interactive environment."""
        with patch('sys.stdout.isatty', return_value=False):
            pm = ProgressManager()
            assert pm._enabled is False

    def test_print_method(self):
        """test print method delegates to console."""
        from rich.console import Console
        mock_console = Mock(spec=Console)
        pm = ProgressManager(console=mock_console)

        pm.print("test message", style="bold")
        mock_console.print.assert_called_once_with("test message", style="bold")

    def test_spinner_context_interactive(self):
        """test spinner context in interactive mode."""
        with patch('sys.stdout.isatty', return_value=True):
            pm = ProgressManager()

            with pm.spinner("Resolving") as (progress, task_id):
                # task_id should be a valid TaskID
                assert task_id is not None
                progress.update(task_id, description="Resolving: 1 decisions")

    def test_spinner_context_non_interactive(self):
        """test spinner context in non-interactive mode prints message."""
        with patch('sys.stdout.isatty', return_value=False):
            from rich.console import Console
            mock_console = Mock(spec=Console)
            pm = ProgressManager(console=mock_console)

            with pm.spinner("Resolving") as (progress, task_id):
                # should yield a dummy and None in non-interactive mode
                assert isinstance(progress, _DummyProgress)
                assert task_id is None

            # should print the message
            mock_console.print.assert_called_once_with("Resolving...")

    def test_spinner_with_exceptions(self):
        """test spinner cleans up when the body raises."""
        with patch('sys.stdout.isatty', return_value=True):
            pm = ProgressManager()

            with pytest.raises(ValueError):
                with pm.spinner("failing"):
                    raise ValueError("test error")


class TestDummyProgress:
    """test dummy progress fallback."""

    def test_add_task(self):
        """test adding a task returns a task id."""
        dp = _DummyProgress()
        task_id = dp.add_task("test", total=10)
        assert task_id is not None

    def test_update(self):
        """test update method is a no-op."""
        dp = _DummyProgress()
        task_id = dp.add_task("test", total=10)
        # should not raise
        dp.update(task_id, description="x")


class TestProgressReporter:
    """test resolver callbacks reach the spinner."""

    def test_counts_and_description(self):
        progress = Mock()
        reporter = ProgressReporter(progress, task_id=1)

        reporter.on_fork_start(MarkerTree.parse("sys_platform == 'win32'"))
        reporter.on_decision(PackageId.base("foo"), Version("1.0"))
        reporter.on_fork_finished(MarkerTree.parse("sys_platform == 'win32'"), 1)

        assert reporter.decisions == 1
        assert reporter.forks == 1
        description = progress.update.call_args.kwargs["description"]
        assert description.startswith("Resolving: 1 decisions, 1 forks done")
        assert "sys_platform == 'win32'" in description

    def test_no_updates_without_task(self):
        progress = Mock()
        reporter = ProgressReporter(progress, task_id=None)
        reporter.on_decision(PackageId.base("foo"), Version("1.0"))
        assert reporter.decisions == 1
        progress.update.assert_not_called()

    def test_resolution_drives_reporter(self):
        """integration: a real resolution reports every decision."""

        class Registry(RegistryClient):
            async def get_versions(self, package_name):
                return [VersionInfo(version="1.0")]

            async def get_package_metadata(self, package_name, version):
                deps = ["bar"] if package_name == "foo" else []
                return PackageMetadata(name=package_name, version=version, requires_dist=deps)

        progress = Mock()
        reporter = ProgressReporter(progress, task_id=1)
        resolver = Resolver(Registry(), reporter=reporter)
        asyncio.run(resolver.resolve(Project(dependencies=["foo"])))

        # the root, foo and bar
        assert reporter.decisions == 3
        assert reporter.forks == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
