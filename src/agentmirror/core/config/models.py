"""
Configuration data models for agentmirror.

These models define the structure of .agentmirror.json and
~/.config/agentmirror/config.json files, with validation and type safety
via Pydantic. Customers are usually supplied through the environment or
customers/<idn>/.env (see env.py) rather than config files, since they carry
API keys.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CustomerConfig(BaseModel):
    """
    One customer namespace on the remote platform.

    Every customer gets its own local tree under customers_dir/<idn> and its
    own map, ledger and token cache under state_dir/<idn>.
    """

    idn: str = Field(description="Customer slug, used for local directory names")
    api_key: str = Field(default="", description="API key exchanged for access tokens")
    project_id: Optional[str] = Field(
        default=None,
        description="Restrict pull to a single project (remote id)",
    )

    @field_validator("idn")
    @classmethod
    def normalize_idn(cls, v: str) -> str:
        """Customer slugs are case-insensitive; store them lowercase."""
        v = v.strip().lower()
        if not v:
            raise ValueError("customer idn must not be empty")
        return v


class MirrorConfig(BaseModel):
    """
    Top-level agentmirror configuration.

    Example:
        >>> config = MirrorConfig(base_url="https://app.example.com")
        >>> config.concurrency
        5
    """

    model_config = ConfigDict(extra="ignore")

    base_url: str = Field(
        default="https://app.newo.ai",
        description="Base URL of the remote platform API",
    )
    customers_dir: str = Field(
        default="customers",
        description="Directory (relative to the workspace) holding customer trees",
    )
    state_dir: str = Field(
        default=".agentmirror",
        description="Directory (relative to the workspace) holding maps, ledgers and tokens",
    )
    concurrency: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum in-flight leaf requests (skill fetch/create/update)",
    )
    publish: bool = Field(
        default=True,
        description="Publish touched flows after a push",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request network timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries for transient network failures",
    )
    default_customer: Optional[str] = Field(
        default=None,
        description="Customer used when --customer is not given",
    )
    customers: dict[str, CustomerConfig] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {v!r}")
        return v

    @field_validator("default_customer")
    @classmethod
    def normalize_default_customer(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip().lower() or None
