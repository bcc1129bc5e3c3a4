"""rich rendering of resolution results and failures."""
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..domain.errors import UnsatisfiableError
from ..resolution.resolver import ResolutionResult


def render_result(console: Console, result: ResolutionResult, show_forks: bool = False):
    """print the resolved packages, one row per (name, version)."""
    packages = result.packages()
    if not packages:
        console.print("[yellow]Nothing to resolve.[/yellow]")
        return

    table = Table(title="Resolution")
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("Markers", style="dim")

    for name, entries in packages.items():
        for version, marker in entries:
            table.add_row(name, str(version), "" if marker.is_true() else str(marker))
    console.print(table)

    if show_forks and result.fork_markers:
        forks = Table(title="Forks")
        forks.add_column("#", style="dim")
        forks.add_column("Marker", style="white")
        forks.add_column("Packages", style="green")
        for position, fork in enumerate(result.forks, start=1):
            forks.add_row(str(position), str(fork.marker), str(len(fork.versions)))
        console.print(forks)

    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def render_failure(console: Console, error: UnsatisfiableError):
    console.print(Panel.fit(
        error.report(),
        title="[bold red]No solution found[/bold red]",
        border_style="red",
    ))
