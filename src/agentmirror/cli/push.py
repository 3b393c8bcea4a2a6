"""
agentmirror CLI - push command.

Creates local-only entities remotely, pushes drifted skills and publishes
the flows that were touched.
"""

from typing import Optional

import typer
from rich.console import Console

from agentmirror.cli import context
from agentmirror.cli.errors import ExitCode, print_not_pulled_error, print_state_error
from agentmirror.core.config import CustomerConfig, MirrorConfig
from agentmirror.core.ledger import LedgerError
from agentmirror.core.sync import PushReconciler, PushResult
from agentmirror.core.tree import MapStore, MapStoreError, TreeLayout

console = Console()


async def _push_customer(
    config: MirrorConfig,
    customer: CustomerConfig,
    layout: TreeLayout,
    *,
    publish: bool,
) -> PushResult:
    gateway = context.build_gateway(config, customer, layout)
    try:
        reconciler = PushReconciler(
            gateway, layout, publish=publish, concurrency=config.concurrency
        )
        return await reconciler.run()
    finally:
        await gateway.aclose()


def _print_result(result: PushResult) -> None:
    for created in result.created:
        console.print(f"[green]+[/green] Created {created.kind} {created.name}")
    for address in result.updated:
        console.print(f"[green]↑[/green] Updated {address}")
    for address in result.orphans:
        console.print(
            f"[yellow]⚠[/yellow]  {address} is no longer in the map; "
            "it was kept after a remote deletion and will not be recreated"
        )
    for failure in result.failed:
        console.print(f"[red]✗[/red] {failure.operation} {failure.name}: {failure.message}")
        for reason in failure.reasons:
            console.print(f"    [dim]- {reason}[/dim]")
    for outcome in result.publish_failures:
        console.print(f"[red]✗[/red] publish {outcome.flow}: {outcome.message}")
        for reason in outcome.reasons:
            console.print(f"    [dim]- {reason}[/dim]")


def push(
    customer: Optional[str] = typer.Option(
        None,
        "--customer",
        "-c",
        help="Customer idn (default: configured default, else all customers)",
    ),
    publish: bool = typer.Option(
        True,
        "--publish/--no-publish",
        help="Publish touched flows after pushing",
    ),
) -> None:
    """
    Push local changes to the platform.

    Examples:
        agentmirror push                     # Push and publish
        agentmirror push --no-publish        # Push only
        agentmirror push --customer acme
    """
    config = context.load_settings()
    any_failed = False

    for selected in context.customers_for(config, customer):
        layout = context.layout_for(config, selected)
        if not MapStore(layout).exists():
            print_not_pulled_error(selected.idn)
            raise typer.Exit(ExitCode.USER_ERROR)

        console.print(f"[blue]Pushing {selected.idn}...[/blue]")
        try:
            result = context.run_async(
                _push_customer(config, selected, layout, publish=publish and config.publish)
            )
        except (LedgerError, MapStoreError) as e:
            print_state_error(selected.idn, str(e))
            raise typer.Exit(ExitCode.GENERAL_ERROR)

        _print_result(result)
        style = "green" if result.ok else "red"
        console.print(f"[{style}]{selected.idn}:[/{style}] {result.summary()}")
        any_failed = any_failed or not result.ok

    if any_failed:
        raise typer.Exit(ExitCode.GENERAL_ERROR)
