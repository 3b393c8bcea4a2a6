"""
agentmirror CLI - pull command.

Mirrors remote projects onto the local tree, asking before overwriting local
script changes and before deleting entities that vanished remotely.
"""

from typing import Optional

import typer
from rich.console import Console

from agentmirror.cli import context
from agentmirror.cli.errors import ExitCode, print_error, print_state_error
from agentmirror.core.config import CustomerConfig, MirrorConfig
from agentmirror.core.gateway import GatewayError
from agentmirror.core.ledger import LedgerError
from agentmirror.core.sync import Confirm, PullAborted, PullReconciler, PullResult, TerminalConfirmer
from agentmirror.core.tree import MapStoreError, TreeLayout

console = Console()


async def _pull_customer(
    config: MirrorConfig,
    customer: CustomerConfig,
    layout: TreeLayout,
    confirm: Confirm,
    *,
    force: bool,
    project_id: Optional[str],
) -> PullResult:
    gateway = context.build_gateway(config, customer, layout)
    try:
        reconciler = PullReconciler(
            gateway,
            layout,
            confirm,
            force=force,
            concurrency=config.concurrency,
            project_id=project_id,
        )
        return await reconciler.run()
    finally:
        await gateway.aclose()


def pull(
    customer: Optional[str] = typer.Option(
        None,
        "--customer",
        "-c",
        help="Customer idn (default: configured default, else all customers)",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite local script changes without asking",
    ),
    project_id: Optional[str] = typer.Option(
        None,
        "--project-id",
        help="Pull only this project (overrides the customer's project_id)",
    ),
) -> None:
    """
    Pull remote projects into the local tree.

    Examples:
        agentmirror pull                     # Default customer (or all)
        agentmirror pull --customer acme     # One customer
        agentmirror pull --force             # Overwrite local changes
    """
    config = context.load_settings()
    confirm = TerminalConfirmer(console)

    for selected in context.customers_for(config, customer):
        layout = context.layout_for(config, selected)
        console.print(f"[blue]Pulling {selected.idn}...[/blue]")

        try:
            result = context.run_async(
                _pull_customer(
                    config,
                    selected,
                    layout,
                    confirm,
                    force=force,
                    project_id=project_id or selected.project_id,
                )
            )
        except PullAborted:
            console.print("[yellow]Pull cancelled.[/yellow] Progress so far has been recorded.")
            raise typer.Exit(ExitCode.SUCCESS)
        except GatewayError as e:
            reason = str(e)
            if e.reasons:
                reason += "\n" + "\n".join(f"  - {r}" for r in e.reasons)
            print_error(f"Pull failed for '{selected.idn}'", reason=reason)
            raise typer.Exit(ExitCode.GENERAL_ERROR)
        except (LedgerError, MapStoreError) as e:
            print_state_error(selected.idn, str(e))
            raise typer.Exit(ExitCode.GENERAL_ERROR)

        for message in result.invalid_skills:
            console.print(f"[yellow]⚠[/yellow]  Skipped script: {message}")
        for address in result.conflicts_kept:
            console.print(f"[yellow]⚠[/yellow]  Kept local changes: {address}")
        for address in result.deleted:
            console.print(f"[red]✗[/red] Deleted locally: {address}")
        console.print(f"[green]✓[/green] {selected.idn}: {result.summary()}")
