"""
.env files for credentials.

Two kinds of file are read with python-dotenv:

Workspace and user files export variables into the process environment
before configuration is loaded:
    OS environment                  (highest, never overwritten)
    <workspace>/.env, .env.local
    $XDG_CONFIG_HOME/agentmirror/.env

Customer files sit in a customer's own folder, customers/<idn>/.env, and
name that customer's credentials without the AGENTMIRROR_CUSTOMER_<IDN>_
prefix:

    API_KEY=...
    PROJECT_ID=...

They are read by the config loader once customers_dir is known, and give
way to any AGENTMIRROR_CUSTOMER_<IDN>_* variable for the same customer.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Iterable, MutableMapping, Optional

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

CUSTOMER_ENV_FILE = ".env"
CUSTOMER_ENV_KEYS = {"API_KEY": "api_key", "PROJECT_ID": "project_id"}


def read_env_file(path: Path) -> dict[str, str]:
    """Variables defined in a .env file; keys without a value are dropped."""
    if not path.is_file():
        return {}
    return {str(k): str(v) for k, v in dotenv_values(path).items() if k and v is not None}


def default_env_files(project_dir: Path) -> list[Path]:
    """Workspace and user .env files, lowest precedence first."""
    xdg_home = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    return [
        xdg_home / "agentmirror" / ".env",
        project_dir / ".env",
        project_dir / ".env.local",
    ]


def load_layered_env(
    *,
    project_dir: Optional[Path] = None,
    env_files: Optional[Iterable[Path]] = None,
    environ: Optional[MutableMapping[str, str]] = None,
) -> list[Path]:
    """
    Export variables from .env files into the environment.

    Args:
        project_dir: Workspace directory (defaults to cwd)
        env_files: Files to read, lowest precedence first
            (defaults to default_env_files(project_dir))
        environ: Target mapping (defaults to os.environ)

    Returns:
        The files that existed and were read
    """
    if environ is None:
        environ = os.environ
    if env_files is None:
        env_files = default_env_files(project_dir or Path.cwd())

    loaded: list[Path] = []
    merged: dict[str, str] = {}
    for path in env_files:
        values = read_env_file(Path(path))
        if values:
            loaded.append(Path(path))
            merged.update(values)

    for key, value in merged.items():
        environ.setdefault(key, value)
    return loaded


def read_customer_env(folder: Path) -> Optional[dict[str, Any]]:
    """
    Credentials from a customer folder's .env.

    Returns:
        A CustomerConfig-shaped dict keyed by the folder name, or None when
        the folder has no .env or it sets no API_KEY
    """
    values = read_env_file(folder / CUSTOMER_ENV_FILE)
    entry: dict[str, Any] = {"idn": folder.name.lower()}
    for key, field in CUSTOMER_ENV_KEYS.items():
        if value := values.get(key, "").strip():
            entry[field] = value
    if "api_key" not in entry:
        if values:
            logger.warning("Ignoring %s: no API_KEY", folder / CUSTOMER_ENV_FILE)
        return None
    return entry


def discover_customer_envs(customers_root: Path) -> dict[str, dict[str, Any]]:
    """Customer entries from every customers/<idn>/.env under customers_root."""
    customers: dict[str, dict[str, Any]] = {}
    if not customers_root.is_dir():
        return customers
    for folder in sorted(p for p in customers_root.iterdir() if p.is_dir()):
        if entry := read_customer_env(folder):
            logger.debug("Customer %s credentials from %s", entry["idn"], folder)
            customers[entry["idn"]] = entry
    return customers
