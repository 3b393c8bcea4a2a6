"""
agentmirror CLI - local authoring commands.

create-* commands write an unbound entity into the local tree; the next
push creates it remotely. delete-* commands only remove the local folder.
"""

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console

from agentmirror.cli import context
from agentmirror.cli.errors import ExitCode, print_error
from agentmirror.core.tree import (
    EntityAddress,
    EventDescriptor,
    RunnerKind,
    StateDescriptor,
    TreeLayout,
)
from agentmirror.core.tree.authoring import (
    AuthoringError,
    add_local_event,
    add_local_state,
    create_local_agent,
    create_local_flow,
    create_local_skill,
    delete_local_entity,
)
from agentmirror.core.tree.metadata import MetadataError

console = Console()

CustomerOption = typer.Option(None, "--customer", "-c", help="Customer idn")
ProjectOption = typer.Option(..., "--project", "-p", help="Project idn")
AgentOption = typer.Option(..., "--agent", "-a", help="Agent idn")
FlowOption = typer.Option(..., "--flow", help="Flow idn")


def _layout(customer: Optional[str]) -> TreeLayout:
    config = context.load_settings()
    return context.layout_for(config, context.single_customer(config, customer))


def _created(kind: str, name: str, path: Path) -> None:
    console.print(f"[green]✓[/green] Created {kind} {name} locally ({path.name})")
    console.print("[dim]Run `agentmirror push` to create it on the platform.[/dim]")


def _fail(e: Exception) -> NoReturn:
    print_error(str(e))
    raise typer.Exit(ExitCode.USER_ERROR)


def create_agent(
    idn: str = typer.Argument(..., help="New agent idn"),
    project: str = ProjectOption,
    title: str = typer.Option("", "--title", help="Agent title"),
    description: str = typer.Option("", "--description", help="Agent description"),
    customer: Optional[str] = CustomerOption,
) -> None:
    """Create a local agent."""
    layout = _layout(customer)
    address = EntityAddress(project, idn)
    try:
        path = create_local_agent(layout, address, title=title, description=description)
    except AuthoringError as e:
        _fail(e)
    _created("agent", str(address), path)


def create_flow(
    idn: str = typer.Argument(..., help="New flow idn"),
    project: str = ProjectOption,
    agent: str = AgentOption,
    title: str = typer.Option("", "--title", help="Flow title"),
    runner: RunnerKind = typer.Option(RunnerKind.GUIDANCE, "--runner", help="Default runner"),
    customer: Optional[str] = CustomerOption,
) -> None:
    """Create a local flow."""
    layout = _layout(customer)
    address = EntityAddress(project, agent, idn)
    try:
        path = create_local_flow(layout, address, title=title, runner=runner)
    except AuthoringError as e:
        _fail(e)
    _created("flow", str(address), path)


def create_skill(
    idn: str = typer.Argument(..., help="New skill idn"),
    project: str = ProjectOption,
    agent: str = AgentOption,
    flow: str = FlowOption,
    title: str = typer.Option("", "--title", help="Skill title"),
    runner: RunnerKind = typer.Option(RunnerKind.GUIDANCE, "--runner", help="Script dialect"),
    customer: Optional[str] = CustomerOption,
) -> None:
    """Create a local skill with a placeholder script."""
    layout = _layout(customer)
    address = EntityAddress(project, agent, flow, idn)
    try:
        path = create_local_skill(layout, address, title=title, runner=runner)
    except AuthoringError as e:
        _fail(e)
    _created("skill", str(address), path)


def create_event(
    idn: str = typer.Argument(..., help="New event idn"),
    project: str = ProjectOption,
    agent: str = AgentOption,
    flow: str = FlowOption,
    skill: Optional[str] = typer.Option(None, "--skill", help="Skill triggered by the event"),
    description: str = typer.Option("", "--description", help="Event description"),
    interrupt_mode: str = typer.Option("queue", "--interrupt-mode", help="queue or interrupt"),
    customer: Optional[str] = CustomerOption,
) -> None:
    """Add a local event to a flow."""
    layout = _layout(customer)
    address = EntityAddress(project, agent, flow)
    event = EventDescriptor(
        idn=idn, description=description, skill_idn=skill, interrupt_mode=interrupt_mode
    )
    try:
        path = add_local_event(layout, address, event)
    except (AuthoringError, MetadataError) as e:
        _fail(e)
    _created("event", f"{address}#{idn}", path)


def create_state(
    idn: str = typer.Argument(..., help="New state field idn"),
    project: str = ProjectOption,
    agent: str = AgentOption,
    flow: str = FlowOption,
    title: str = typer.Option("", "--title", help="State title"),
    default_value: Optional[str] = typer.Option(None, "--default-value", help="Default value"),
    scope: str = typer.Option("user", "--scope", help="State scope"),
    customer: Optional[str] = CustomerOption,
) -> None:
    """Add a local state field to a flow."""
    layout = _layout(customer)
    address = EntityAddress(project, agent, flow)
    state = StateDescriptor(idn=idn, title=title, default_value=default_value, scope=scope)
    try:
        path = add_local_state(layout, address, state)
    except (AuthoringError, MetadataError) as e:
        _fail(e)
    _created("state", f"{address}#{idn}", path)


def _delete(address: EntityAddress, customer: Optional[str], confirm: bool) -> None:
    if not confirm:
        print_error(
            f"Refusing to delete {address.kind.value} {address} without confirmation",
            reason="Only the local folder is removed; the platform copy is untouched",
            solution="add --confirm",
        )
        raise typer.Exit(ExitCode.USER_ERROR)
    layout = _layout(customer)
    try:
        delete_local_entity(layout, address)
    except AuthoringError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Deleted local {address.kind.value} {address}")


ConfirmOption = typer.Option(False, "--confirm", help="Confirm the local deletion")


def delete_agent(
    idn: str = typer.Argument(..., help="Agent idn"),
    project: str = ProjectOption,
    confirm: bool = ConfirmOption,
    customer: Optional[str] = CustomerOption,
) -> None:
    """Delete a local agent folder."""
    _delete(EntityAddress(project, idn), customer, confirm)


def delete_flow(
    idn: str = typer.Argument(..., help="Flow idn"),
    project: str = ProjectOption,
    agent: str = AgentOption,
    confirm: bool = ConfirmOption,
    customer: Optional[str] = CustomerOption,
) -> None:
    """Delete a local flow folder."""
    _delete(EntityAddress(project, agent, idn), customer, confirm)


def delete_skill(
    idn: str = typer.Argument(..., help="Skill idn"),
    project: str = ProjectOption,
    agent: str = AgentOption,
    flow: str = FlowOption,
    confirm: bool = ConfirmOption,
    customer: Optional[str] = CustomerOption,
) -> None:
    """Delete a local skill folder."""
    _delete(EntityAddress(project, agent, flow, idn), customer, confirm)
