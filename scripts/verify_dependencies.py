#!/usr/bin/env python3
"""
Dependency Verification Script

Imports every library unimatch needs at runtime (plus the test runner) and
prints the installed distribution version next to each one.
"""

import sys
from importlib import import_module
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from rich.console import Console
from rich.table import Table

console = Console()

# (import name, distribution name on the package index)
DEPENDENCIES = [
    ("openai", "openai"),
    ("httpx", "httpx"),
    ("bs4", "beautifulsoup4"),
    ("dotenv", "python-dotenv"),
    ("pydantic", "pydantic"),
    ("structlog", "structlog"),
    ("rich", "rich"),
    ("jinja2", "jinja2"),
    ("jsonlines", "jsonlines"),
    ("tenacity", "tenacity"),
    ("aiolimiter", "aiolimiter"),
    ("pytest", "pytest"),
]


def installed_version(distribution: str) -> Optional[str]:
    try:
        return version(distribution)
    except PackageNotFoundError:
        return None


def verify_imports() -> list[str]:
    """Import each dependency and render a status table.

    Returns:
        Distribution names of dependencies that failed to import
    """
    failed = []
    table = Table(title="unimatch dependencies")
    table.add_column("Package")
    table.add_column("Version")
    table.add_column("Status")

    for module_name, distribution in DEPENDENCIES:
        try:
            import_module(module_name)
        except ImportError as e:
            failed.append(distribution)
            table.add_row(distribution, "-", f"[red]FAILED[/red] {e}")
            continue
        table.add_row(distribution, installed_version(distribution) or "unknown", "[green]OK[/green]")

    console.print(table)
    if failed:
        console.print(f"[red]ERROR: {len(failed)} dependencies failed: {', '.join(failed)}[/red]")
    else:
        console.print("[green]SUCCESS: All dependencies verified[/green]")

    return failed


if __name__ == "__main__":
    sys.exit(1 if verify_imports() else 0)
