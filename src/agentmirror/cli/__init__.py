"""
agentmirror CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys

import typer
from rich.console import Console

from agentmirror import __version__
from agentmirror.cli import customers, entities, pull, push, status
from agentmirror.core.config.env import load_layered_env

# Help panel names for command grouping
PANEL_SYNC = "Sync"
PANEL_AUTHOR = "Author Locally"
PANEL_SETUP = "Setup"

app = typer.Typer(
    name="agentmirror",
    help="Mirror agent platform projects to local files and back",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging on stderr.

    Args:
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
) -> None:
    """
    agentmirror - keep a local copy of your agent platform projects.

    Quick Start:
        1. echo "AGENTMIRROR_CUSTOMER_ACME_API_KEY=..." >> .env
        2. agentmirror pull          # Mirror projects locally
        3. edit skills under customers/acme/projects/
        4. agentmirror status        # See what changed
        5. agentmirror push          # Push and publish
    """
    # Precedence: OS env > project .env > user .env
    load_layered_env()
    setup_logging(debug)
    ctx.obj = {"debug": debug}


# =============================================================================
# Sync
# =============================================================================

app.command(name="pull", rich_help_panel=PANEL_SYNC)(pull.pull)
app.command(name="push", rich_help_panel=PANEL_SYNC)(push.push)
app.command(name="status", rich_help_panel=PANEL_SYNC)(status.status)


# =============================================================================
# Author Locally
# =============================================================================

app.command(name="create-agent", rich_help_panel=PANEL_AUTHOR)(entities.create_agent)
app.command(name="create-flow", rich_help_panel=PANEL_AUTHOR)(entities.create_flow)
app.command(name="create-skill", rich_help_panel=PANEL_AUTHOR)(entities.create_skill)
app.command(name="create-event", rich_help_panel=PANEL_AUTHOR)(entities.create_event)
app.command(name="create-state", rich_help_panel=PANEL_AUTHOR)(entities.create_state)
app.command(name="delete-agent", rich_help_panel=PANEL_AUTHOR)(entities.delete_agent)
app.command(name="delete-flow", rich_help_panel=PANEL_AUTHOR)(entities.delete_flow)
app.command(name="delete-skill", rich_help_panel=PANEL_AUTHOR)(entities.delete_skill)


# =============================================================================
# Setup
# =============================================================================

app.command(name="customers", rich_help_panel=PANEL_SETUP)(customers.customers)


@app.command(rich_help_panel=PANEL_SETUP)
def version() -> None:
    """Show agentmirror version and exit."""
    console.print(f"agentmirror version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
