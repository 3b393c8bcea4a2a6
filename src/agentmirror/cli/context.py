"""
Shared plumbing for CLI commands: configuration, customer selection,
layouts, the gateway factory and the async bridge.

Commands call build_gateway through this module so tests can replace it
with monkeypatch.
"""

import asyncio
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import typer

from agentmirror.cli.errors import ExitCode, print_config_error
from agentmirror.core.config import (
    ConfigError,
    CustomerConfig,
    MirrorConfig,
    load_config,
    require_customer,
    select_customers,
)
from agentmirror.core.gateway import HttpGateway, RemoteGateway, RetryPolicy
from agentmirror.core.tree import TreeLayout

T = TypeVar("T")


def load_settings() -> MirrorConfig:
    """Load configuration for the current directory or exit with USER_ERROR."""
    try:
        return load_config(project_dir=Path.cwd())
    except ConfigError as e:
        print_config_error(str(e))
        raise typer.Exit(ExitCode.USER_ERROR)


def customers_for(config: MirrorConfig, idn: str | None) -> list[CustomerConfig]:
    """Customers a multi-customer command processes, in order."""
    try:
        return select_customers(config, idn)
    except ConfigError as e:
        print_config_error(str(e))
        raise typer.Exit(ExitCode.USER_ERROR)


def single_customer(config: MirrorConfig, idn: str | None) -> CustomerConfig:
    try:
        return require_customer(config, idn)
    except ConfigError as e:
        print_config_error(str(e))
        raise typer.Exit(ExitCode.USER_ERROR)


def layout_for(config: MirrorConfig, customer: CustomerConfig) -> TreeLayout:
    return TreeLayout(
        Path.cwd(),
        customer.idn,
        customers_dir=config.customers_dir,
        state_dir=config.state_dir,
    )


def build_gateway(
    config: MirrorConfig, customer: CustomerConfig, layout: TreeLayout
) -> RemoteGateway:
    """Construct the remote gateway for one customer."""
    return HttpGateway(
        config.base_url,
        customer.api_key,
        token_cache=layout.tokens_path,
        timeout=config.timeout,
        retry=RetryPolicy(max_retries=config.max_retries),
    )


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine from Typer's sync command context."""
    return asyncio.run(coro)
