import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from ..config import (
    PrereleaseMode,
    PythonForkStrategy,
    ResolutionStrategy,
    get_index,
    load_options,
)
from ..domain.errors import ResolventError, UnsatisfiableError
from ..domain.models import Project
from ..lock.lockfile import LockfileStore
from ..lock.preferences import load_lock_preferences, preferred_forks
from ..registry.index import make_registry
from ..resolution.resolver import Resolver
from ..ui.display import render_failure, render_result
from ..ui.progress import ProgressManager, ProgressReporter
from .config_commands import app as config_app

app = typer.Typer()
console = Console()

app.add_typer(config_app, name="config", help="Manage resolver defaults")


def setup_logging(verbose: int):
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def load_project(path: Optional[Path]) -> Project:
    if path is None:
        return Project()
    try:
        with open(path, "r") as f:
            return Project(**json.load(f))
    except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
        console.print(f"[red]Error reading project file {path}:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def resolve(
    requirements: Optional[List[str]] = typer.Argument(None, help="PEP 508 requirements, e.g. 'flask>=2'"),
    project_file: Optional[Path] = typer.Option(None, "--project", "-p", help="JSON file describing the project"),
    index: Optional[str] = typer.Option(None, "--index", "-i", help="Index document path or URL"),
    requires_python: Optional[str] = typer.Option(None, "--requires-python", help="Python versions to support, e.g. '>=3.9'"),
    extra: Optional[List[str]] = typer.Option(None, "--extra", help="Enable a project extra"),
    group: Optional[List[str]] = typer.Option(None, "--group", help="Enable a dependency group"),
    constraint: Optional[List[str]] = typer.Option(None, "--constraint", "-c", help="Narrow a package wherever it is required"),
    override: Optional[List[str]] = typer.Option(None, "--override", help="Replace every requirement on a package"),
    lock: Optional[Path] = typer.Option(None, "--lock", help="Read preferences from and write the result to this lockfile"),
    strategy: Optional[ResolutionStrategy] = typer.Option(None, "--strategy"),
    prerelease: Optional[PrereleaseMode] = typer.Option(None, "--prerelease"),
    python_forks: Optional[bool] = typer.Option(
        None, "--python-forks/--no-python-forks", help="Fork on requires-python instead of filtering"
    ),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Wheel tag of the target environment (repeatable)"),
    concurrent_forks: Optional[bool] = typer.Option(None, "--concurrent-forks/--sequential-forks"),
    show_forks: bool = typer.Option(False, "--forks", help="Also list the forks"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True),
):
    """resolve requirements against an index."""
    setup_logging(verbose)

    location = index or get_index()
    if not location:
        console.print("[red]No index configured.[/red] Pass --index or run 'resolvent config set index <location>'.")
        raise typer.Exit(1)

    project = load_project(project_file)
    if requirements:
        project.dependencies = project.dependencies + list(requirements)
    if requires_python:
        project.requires_python = requires_python
    if extra:
        project.extras = project.extras + list(extra)
    if group:
        project.groups = project.groups + list(group)
    if constraint:
        project.constraints = project.constraints + list(constraint)
    if override:
        project.overrides = project.overrides + list(override)

    fork_strategy = None
    if python_forks is not None:
        fork_strategy = PythonForkStrategy.FORK if python_forks else PythonForkStrategy.FILTER
    try:
        options = load_options(
            resolution_strategy=strategy,
            prerelease=prerelease,
            python_fork_strategy=fork_strategy,
            tags=tag or None,
            concurrent_forks=concurrent_forks,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)

    store = LockfileStore(lock) if lock is not None else None
    progress_manager = ProgressManager(console)

    async def run():
        previous = store.load() if store is not None else None
        registry = make_registry(location)
        try:
            with progress_manager.spinner("Resolving") as (progress, task_id):
                resolver = Resolver(
                    registry,
                    options,
                    preferences=load_lock_preferences(previous) if previous else None,
                    preferred_forks=preferred_forks(previous) if previous else None,
                    reporter=ProgressReporter(progress, task_id),
                )
                return await resolver.resolve(project)
        finally:
            await registry.close()

    try:
        result = asyncio.run(run())
    except UnsatisfiableError as e:
        render_failure(console, e)
        raise typer.Exit(1)
    except ResolventError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    render_result(console, result, show_forks=show_forks)

    if store is not None:
        store.save(result.to_lockfile())
        console.print(f"[green]✓ Wrote {store.lock_path}[/green]")


if __name__ == "__main__":
    app()
