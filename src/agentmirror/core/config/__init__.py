"""
Configuration models and loading.

This module provides Pydantic models for agentmirror configuration
with multi-layer merging: defaults < user < project < env vars.
"""

from .env import discover_customer_envs, load_layered_env, read_customer_env
from .loader import (
    ConfigError,
    get_customer,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    list_customers,
    load_config,
    require_customer,
    select_customers,
)
from .models import CustomerConfig, MirrorConfig

__all__ = [
    # Models
    "CustomerConfig",
    "MirrorConfig",
    # Loader
    "ConfigError",
    "discover_customer_envs",
    "get_customer",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "list_customers",
    "load_config",
    "load_layered_env",
    "read_customer_env",
    "require_customer",
    "select_customers",
]
