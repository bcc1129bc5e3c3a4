"""progress display for resolutions."""

import sys
from contextlib import contextmanager
from typing import Optional

from packaging.version import Version
from rich.console import Console
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TaskID,
)

from ..markers import MarkerTree
from ..resolution.packages import PackageId
from ..resolution.solver import Reporter


class ProgressManager:
    """central manager for all progress output."""

    def __init__(self, console: Optional[Console] = None):
        """
        initialize progress manager.

        args:
            console: optional rich console instance. if not provided, creates new one.
        """
        self.console = console or Console()
        self._enabled = self._should_show_progress()

    def _should_show_progress(self) -> bool:
        """
        check if we should show progress.

        returns false in non-interactive environments (ci/cd, piped output).
        """
        return sys.stdout.isatty() and not sys.stdout.closed

    def print(self, *args, **kwargs):
        """print through managed console to avoid interference with the spinner."""
        self.console.print(*args, **kwargs)

    @contextmanager
    def spinner(self, description: str, transient: bool = True):
        """
        create an indeterminate spinner for the resolution.

        args:
            description: text to display next to spinner
            transient: if true, spinner disappears when done

        yields:
            (progress, task id); the progress is a no-op in non-interactive mode
        """
        if not self._enabled:
            # in non-interactive mode, just print the message
            self.console.print(f"{description}...")
            yield _DummyProgress(), None
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=transient,
        ) as progress:
            task_id = progress.add_task(description, total=None)
            yield progress, task_id


class ProgressReporter(Reporter):
    """feeds resolver callbacks into a spinner."""

    def __init__(self, progress, task_id: Optional[TaskID]):
        self.progress = progress
        self.task_id = task_id
        self.decisions = 0
        self.forks = 0
        self._fork = ""

    def _describe(self) -> str:
        where = f" [dim]({self._fork})[/dim]" if self._fork else ""
        return f"Resolving: {self.decisions} decisions, {self.forks} forks done{where}"

    def on_fork_start(self, marker: MarkerTree) -> None:
        self._fork = str(marker)
        if self.task_id is not None:
            self.progress.update(self.task_id, description=self._describe())

    def on_decision(self, package: PackageId, version: Version) -> None:
        self.decisions += 1
        if self.task_id is not None:
            self.progress.update(self.task_id, description=self._describe())

    def on_fork_finished(self, marker: MarkerTree, decisions: int) -> None:
        self.forks += 1
        if self.task_id is not None:
            self.progress.update(self.task_id, description=self._describe())


class _DummyProgress:
    """dummy progress object for non-interactive mode."""

    def add_task(self, description: str, total: Optional[int] = None, **kwargs) -> TaskID:
        """add a task (no-op)."""
        return TaskID(0)

    def update(self, task_id: TaskID, **kwargs):
        """update a task (no-op)."""
        pass
