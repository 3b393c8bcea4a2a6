"""
agentmirror CLI - customers command.
"""

import typer
from rich.console import Console
from rich.table import Table

from agentmirror.cli import context
from agentmirror.core.config import list_customers
from agentmirror.core.config.loader import default_customer

console = Console()


def _mask(api_key: str) -> str:
    if not api_key:
        return "[red]missing[/red]"
    return f"…{api_key[-4:]}" if len(api_key) > 8 else "set"


def customers() -> None:
    """List configured customers."""
    config = context.load_settings()
    idns = list_customers(config)
    if not idns:
        console.print("[yellow]No customers configured.[/yellow]")
        console.print("[dim]Set AGENTMIRROR_CUSTOMER_<IDN>_API_KEY in your environment or .env[/dim]")
        raise typer.Exit(0)

    default = default_customer(config)
    table = Table(title="Customers")
    table.add_column("IDN", style="cyan")
    table.add_column("Project ID")
    table.add_column("API key")
    table.add_column("Default", justify="center")

    for idn in idns:
        entry = config.customers[idn]
        table.add_row(
            idn,
            entry.project_id or "[dim]all[/dim]",
            _mask(entry.api_key),
            "✓" if default is not None and default.idn == idn else "",
        )

    console.print(table)
