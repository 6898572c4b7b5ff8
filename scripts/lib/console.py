"""Colored console output utilities using Rich."""

import logging

from rich.console import Console
from rich.table import Table

console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route library logging to stderr; DEBUG when --verbose is given."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # botocore is extremely chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def print_step(step: str, message: str) -> None:
    """Print a step indicator: [1/5] Deploying..."""
    console.print(f"\n[blue][{step}][/blue] {message}")


def print_success(message: str) -> None:
    """Print success message with green checkmark."""
    console.print(f"   [green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print warning message with yellow indicator."""
    console.print(f"   [yellow]![/yellow] {message}")


def print_error(message: str) -> None:
    """Print error message with red X."""
    console.print(f"   [red]✗[/red] {message}")


def print_info(message: str) -> None:
    """Print an indented informational line."""
    console.print(f"   {message}")


def print_header(title: str, emoji: str = "🚀") -> None:
    """Print stage header."""
    console.print(f"[blue]{emoji} {title}[/blue]")
    console.print("=" * 30)


def print_config(values: dict[str, str | None]) -> None:
    """Print configuration summary, skipping empty values."""
    console.print("[blue]📋 Configuration:[/blue]")
    width = max((len(key) for key in values), default=0)
    for key, value in values.items():
        if value:
            console.print(f"   {key + ':':<{width + 1}} {value}")


def print_table(title: str, columns: list[str], rows: list[list[str]]) -> None:
    """Print rows as a Rich table."""
    table = Table(title=title, title_justify="left")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*row)
    console.print(table)


def print_final_success(message: str = "Deployment successful!") -> None:
    """Print final success message."""
    console.print()
    console.print(f"[green]✅ {message}[/green]")


def print_next_steps(lines: list[str]) -> None:
    """Print next steps after a stage completes."""
    console.print()
    console.print("Next steps:")
    for line in lines:
        console.print(f"   {line}")
