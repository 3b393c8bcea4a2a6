"""
agentmirror CLI - status command.

Read-only: lists files that drifted from the last pull or push.
"""

from typing import Optional

import typer
from rich.console import Console

from agentmirror.cli import context
from agentmirror.cli.errors import ExitCode, print_not_pulled_error, print_state_error
from agentmirror.core.ledger import LedgerError
from agentmirror.core.sync import FileState, StatusReporter
from agentmirror.core.tree import MapStore, MapStoreError

console = Console()

STATE_STYLES = {
    FileState.MODIFIED: "yellow",
    FileState.DELETED: "red",
    FileState.ADDED: "green",
}


def status(
    customer: Optional[str] = typer.Option(
        None,
        "--customer",
        "-c",
        help="Customer idn (default: configured default, else all customers)",
    ),
) -> None:
    """
    Show local changes since the last sync.

    M = modified, D = deleted, A = added (local-only, not yet pushed).
    """
    config = context.load_settings()
    selected = context.customers_for(config, customer)

    for current in selected:
        layout = context.layout_for(config, current)
        if not MapStore(layout).exists():
            print_not_pulled_error(current.idn)
            raise typer.Exit(ExitCode.USER_ERROR)

        try:
            report = StatusReporter(layout).run()
        except (LedgerError, MapStoreError) as e:
            print_state_error(current.idn, str(e))
            raise typer.Exit(ExitCode.GENERAL_ERROR)

        if len(selected) > 1:
            console.print(f"[bold]{current.idn}[/bold]")
        for entry in report.entries:
            style = STATE_STYLES[entry.state]
            console.print(f"[{style}]{entry.state.value}[/{style}]  {entry.path}", highlight=False)
        for address in report.orphans:
            console.print(f"[dim]?  {address} (kept after remote deletion)[/dim]", highlight=False)
        console.print(report.summary())
