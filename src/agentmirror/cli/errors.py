"""
Standardized error handling and exit codes for the agentmirror CLI.

This module provides consistent error messaging with actionable guidance
and standardized exit codes across all CLI commands.
"""

from enum import IntEnum

from rich.console import Console

console = Console()


class ExitCode(IntEnum):
    """Standard exit codes for agentmirror operations."""

    SUCCESS = 0
    """Operation completed successfully (including a cancelled pull)."""

    GENERAL_ERROR = 1
    """Remote failure, or at least one entity failed during push."""

    USER_ERROR = 2
    """User configuration or input error (actionable by user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "No map for customer acme",
        ...     reason="push needs the id bindings written by pull",
        ...     solution="agentmirror pull --customer acme",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{reason}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_not_pulled_error(customer_idn: str) -> None:
    """Print error when a customer has no map yet."""
    print_error(
        f"Customer '{customer_idn}' has not been pulled yet",
        reason="The local map binding slugs to remote ids does not exist",
        solution=f"agentmirror pull --customer {customer_idn}",
    )


def print_config_error(message: str) -> None:
    """Print error when configuration cannot be resolved."""
    print_error(
        "Configuration problem",
        reason=message,
        solution="agentmirror customers  # to see configured customers",
    )


def print_state_error(customer_idn: str, message: str) -> None:
    """Print error when the map or ledger of a customer is unreadable."""
    print_error(
        f"Local state for '{customer_idn}' is unreadable",
        reason=message,
        solution=f"agentmirror pull --customer {customer_idn}  # to rebuild it",
    )
