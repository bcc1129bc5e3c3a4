import typer
from rich.console import Console
from rich.table import Table

from ..config import (
    CONFIG_FILE,
    PRERELEASE_KEY,
    STRATEGY_KEY,
    FORK_STRATEGY_KEY,
    SETTING_NAMES,
    PrereleaseMode,
    PythonForkStrategy,
    ResolutionStrategy,
    get_setting,
    read_config,
    set_setting,
)

app = typer.Typer()
console = Console()

# settings whose values must name an enum member
_CHOICES = {
    STRATEGY_KEY: ResolutionStrategy,
    PRERELEASE_KEY: PrereleaseMode,
    FORK_STRATEGY_KEY: PythonForkStrategy,
}


def _resolve_key(name: str) -> str:
    key = SETTING_NAMES.get(name)
    if key is None:
        console.print(f"[red]Unknown setting '{name}'.[/red] Use one of: {', '.join(SETTING_NAMES)}")
        raise typer.Exit(1)
    return key


@app.command("get")
def get_value(name: str):
    """print one configured value."""
    value = get_setting(_resolve_key(name))
    if value is None:
        console.print(f"[dim]{name} is not set[/dim]")
        return
    console.print(value)


@app.command("set")
def set_value(name: str, value: str):
    """store a default in the config file."""
    key = _resolve_key(name)

    choices = _CHOICES.get(key)
    if choices is not None and value not in [c.value for c in choices]:
        console.print(f"[red]Invalid value '{value}' for {name}.[/red] Use one of: {', '.join(c.value for c in choices)}")
        raise typer.Exit(1)

    try:
        set_setting(key, value)
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓ {name} = {value}[/green]")


@app.command("show")
def show_config():
    """list every configured value."""
    config = read_config()
    if not config:
        console.print("[yellow]No settings configured.[/yellow]")
        console.print(f"\nConfig file: [cyan]{CONFIG_FILE}[/cyan]")
        return

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    for name, key in SETTING_NAMES.items():
        if key in config:
            table.add_row(name, config[key])

    console.print(table)


if __name__ == "__main__":
    app()
