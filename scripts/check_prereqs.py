#!/usr/bin/env python3
"""Check the tools and AWS profiles the stage scripts rely on.

Run this before Stage A. Every stage also checks the tools it needs, but this
reports all of them at once together with their versions.
"""

import shutil
import subprocess
from typing import Annotated

import typer

from .lib.commands import INSTALL_HINTS
from .lib.config import ConfigurationError
from .lib.console import configure_logging, console, print_error, print_header, print_success
from .lib.credentials import check_profile

app = typer.Typer(help="Check prerequisites for the deployment playbook")

REQUIRED_TOOLS = ["aws", "cdk", "node", "npm"]
MAX_VERSION_LENGTH = 60


def tool_version(name: str, version_flag: str = "--version") -> str | None:
    """First line of ``name --version``, or None when the tool is not on PATH."""
    path = shutil.which(name)
    if not path:
        return None

    try:
        result = subprocess.run(
            [name, version_flag],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.TimeoutExpired, OSError):
        return f"found at {path}"

    lines = (result.stdout.strip() or result.stderr.strip()).splitlines()
    version = lines[0] if lines else f"found at {path}"
    if len(version) > MAX_VERSION_LENGTH:
        version = version[:MAX_VERSION_LENGTH] + "..."
    return version


def check_tools(tools: list[str]) -> list[str]:
    """Print one line per tool; returns the missing ones."""
    missing = []
    for name in tools:
        version = tool_version(name)
        if version is None:
            print_error(f"{name} - NOT FOUND")
            console.print(f"     Install: {INSTALL_HINTS.get(name, 'see the tool documentation')}")
            missing.append(name)
        else:
            print_success(f"{name} - {version}")
    return missing


@app.command()
def main(
    profile: Annotated[
        list[str] | None,
        typer.Option("--profile", "-p", help="AWS profile to verify (repeatable)"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Check all prerequisites."""
    configure_logging(verbose)
    print_header("Checking prerequisites", emoji="🔍")

    missing = check_tools(REQUIRED_TOOLS)

    failed_profiles = []
    for name in profile or []:
        try:
            check_profile(name, interactive=False)
        except ConfigurationError:
            failed_profiles.append(name)

    console.print()
    if missing or failed_profiles:
        console.print("[red]Some prerequisites are missing. Install them and try again.[/red]")
        raise typer.Exit(1)
    console.print("[green]All prerequisites found![/green]")


if __name__ == "__main__":
    app()
