"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < customer .env files < env vars

Customers are discovered from customer folders and the environment:
    customers/<idn>/.env                  API_KEY and PROJECT_ID for <idn>
    AGENTMIRROR_CUSTOMER_<IDN>_API_KEY     one entry per customer
    AGENTMIRROR_CUSTOMER_<IDN>_PROJECT_ID  optional single-project restriction
    AGENTMIRROR_API_KEY                    legacy single-customer mode ("default")
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from .env import discover_customer_envs
from .models import CustomerConfig, MirrorConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "AGENTMIRROR_"
CUSTOMER_PREFIX = f"{ENV_PREFIX}CUSTOMER_"
API_KEY_SUFFIX = "_API_KEY"
PROJECT_ID_SUFFIX = "_PROJECT_ID"


class ConfigError(Exception):
    """Raised when configuration is invalid or a customer cannot be selected."""

    pass


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """Path to ~/.config/agentmirror/config.json (or XDG equivalent)."""
    return get_xdg_config_home() / "agentmirror" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """Path to .agentmirror.json in the workspace root."""
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".agentmirror.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`. Nested dicts
    are merged, not replaced.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 30}})
        {'a': 1, 'b': {'x': 10, 'y': 30}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    The config system is resilient: a broken config file is reported and
    skipped instead of aborting the command.
    """
    if not path.exists():
        return None

    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def parse_customers(env: Mapping[str, str]) -> dict[str, dict[str, Any]]:
    """
    Extract customer definitions from environment variables.

    Args:
        env: Environment mapping (usually os.environ)

    Returns:
        Mapping of customer idn to a CustomerConfig-shaped dict
    """
    customers: dict[str, dict[str, Any]] = {}

    for key, value in env.items():
        if not (key.startswith(CUSTOMER_PREFIX) and key.endswith(API_KEY_SUFFIX)):
            continue
        if not value:
            continue
        idn = key[len(CUSTOMER_PREFIX) : -len(API_KEY_SUFFIX)].lower()
        if not idn:
            continue
        entry: dict[str, Any] = {"idn": idn, "api_key": value.strip()}
        project_id = env.get(f"{CUSTOMER_PREFIX}{idn.upper()}{PROJECT_ID_SUFFIX}")
        if project_id:
            entry["project_id"] = project_id.strip()
        customers[idn] = entry

    # Legacy single customer mode
    legacy_key = env.get(f"{ENV_PREFIX}API_KEY")
    if legacy_key and not customers:
        entry = {"idn": "default", "api_key": legacy_key.strip()}
        if project_id := env.get(f"{ENV_PREFIX}PROJECT_ID"):
            entry["project_id"] = project_id.strip()
        customers["default"] = entry

    return customers


def apply_env_overrides(
    config_dict: dict[str, Any], env: Mapping[str, str]
) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Supported env vars:
        AGENTMIRROR_BASE_URL - overrides base_url
        AGENTMIRROR_CONCURRENCY - overrides concurrency
        AGENTMIRROR_DEFAULT_CUSTOMER - overrides default_customer
        AGENTMIRROR_CUSTOMER_<IDN>_API_KEY - adds/overrides customers
    """
    result = config_dict.copy()

    if base_url := env.get(f"{ENV_PREFIX}BASE_URL"):
        result["base_url"] = base_url.strip()

    if concurrency_str := env.get(f"{ENV_PREFIX}CONCURRENCY"):
        try:
            result["concurrency"] = int(concurrency_str)
        except ValueError:
            logger.warning(
                "Invalid %sCONCURRENCY value '%s', ignoring", ENV_PREFIX, concurrency_str
            )

    if default_customer := env.get(f"{ENV_PREFIX}DEFAULT_CUSTOMER"):
        result["default_customer"] = default_customer

    env_customers = parse_customers(env)
    if env_customers:
        result["customers"] = deep_merge(result.get("customers", {}), env_customers)

    return result


def get_default_config() -> dict[str, Any]:
    """Hardcoded default configuration."""
    return {
        "base_url": "https://app.newo.ai",
        "customers_dir": "customers",
        "state_dir": ".agentmirror",
        "concurrency": 5,
        "publish": True,
        "customers": {},
    }


def load_config(
    project_dir: Path | None = None,
    env: Optional[Mapping[str, str]] = None,
) -> MirrorConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (AGENTMIRROR_*)
        2. Customer folder .env files (customers/<idn>/.env)
        3. Project config (.agentmirror.json)
        4. User config (~/.config/agentmirror/config.json)
        5. Hardcoded defaults

    Args:
        project_dir: Workspace directory to load .agentmirror.json from
        env: Environment mapping (defaults to os.environ)

    Raises:
        ConfigError: If the merged config fails validation
    """
    if env is None:
        env = os.environ

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    customers_root = (project_dir or Path.cwd()) / merged["customers_dir"]
    if folder_customers := discover_customer_envs(customers_root):
        merged["customers"] = deep_merge(merged.get("customers", {}), folder_customers)

    merged = apply_env_overrides(merged, env)

    try:
        return MirrorConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def list_customers(config: MirrorConfig) -> list[str]:
    """Sorted idns of all configured customers."""
    return sorted(config.customers)


def default_customer(config: MirrorConfig) -> CustomerConfig | None:
    """The explicit default customer, or the only customer when there is one."""
    if config.default_customer and config.default_customer in config.customers:
        return config.customers[config.default_customer]
    if len(config.customers) == 1:
        return next(iter(config.customers.values()))
    return None


def get_customer(config: MirrorConfig, idn: str) -> CustomerConfig:
    """
    Look up a customer by idn.

    Raises:
        ConfigError: If the customer is not configured
    """
    customer = config.customers.get(idn.strip().lower())
    if customer is None:
        available = ", ".join(list_customers(config)) or "none"
        raise ConfigError(f"Unknown customer: {idn}. Available customers: {available}")
    return customer


def select_customers(config: MirrorConfig, idn: str | None = None) -> list[CustomerConfig]:
    """
    Resolve which customers a multi-customer command should process.

    Returns the named customer, else the default customer, else every
    configured customer in idn order.

    Raises:
        ConfigError: If no customers are configured or idn is unknown
    """
    if not config.customers:
        raise ConfigError(
            f"No customers configured. Set {CUSTOMER_PREFIX}<IDN>{API_KEY_SUFFIX} "
            "in your environment or .env file."
        )
    if idn:
        return [get_customer(config, idn)]
    if customer := default_customer(config):
        return [customer]
    return [config.customers[key] for key in list_customers(config)]


def require_customer(config: MirrorConfig, idn: str | None = None) -> CustomerConfig:
    """
    Resolve exactly one customer for single-customer commands.

    Raises:
        ConfigError: If no single customer can be determined
    """
    customers = select_customers(config, idn)
    if len(customers) > 1:
        raise ConfigError(
            "Multiple customers configured but no default specified. "
            f"Available: {', '.join(c.idn for c in customers)}. "
            f"Set {ENV_PREFIX}DEFAULT_CUSTOMER or use --customer."
        )
    return customers[0]
