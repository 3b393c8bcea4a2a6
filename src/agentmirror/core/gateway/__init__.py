"""
Remote gateway: the platform operations consumed by pull and push.

Example:
    >>> from agentmirror.core.gateway import HttpGateway
    >>> async with HttpGateway(config.base_url, customer.api_key) as gateway:
    ...     agents = await gateway.list_agents(project_id)
"""

from agentmirror.core.gateway.auth import TokenProvider
from agentmirror.core.gateway.client import HttpGateway, RemoteGateway
from agentmirror.core.gateway.errors import AuthenticationError, GatewayError
from agentmirror.core.gateway.models import RemoteAgent, RemoteSkill, StoredTokens
from agentmirror.core.gateway.retry import RetryPolicy, call_with_retry, is_transient

__all__ = [
    "AuthenticationError",
    "GatewayError",
    "HttpGateway",
    "RemoteAgent",
    "RemoteGateway",
    "RemoteSkill",
    "RetryPolicy",
    "StoredTokens",
    "TokenProvider",
    "call_with_retry",
    "is_transient",
]
