"""
Remote gateway: the protocol the reconcilers consume and its HTTP client.

HttpGateway sends every call through one path:

    1. Attach the current bearer token and send.
    2. On 401, if the request's own extensions do not carry the retried
       marker, re-authenticate, set the marker and resend once.
    3. A failed attempt raises GatewayError; call_with_retry repeats the
       transient ones (no answer, 408, 429, 5xx) as fresh requests.
    4. Any remaining failure surfaces as that GatewayError.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Protocol, TypeVar, runtime_checkable

import httpx
from pydantic import BaseModel, ValidationError

from agentmirror.core.gateway.auth import TokenProvider
from agentmirror.core.gateway.errors import GatewayError
from agentmirror.core.gateway.models import RemoteAgent, RemoteSkill
from agentmirror.core.gateway.retry import RetryPolicy, call_with_retry
from agentmirror.core.tree.models import (
    AgentMetadata,
    CustomerAttribute,
    EventDescriptor,
    FlowMetadata,
    ProjectMetadata,
    SkillMetadata,
    StateDescriptor,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

RETRIED_EXTENSION = "agentmirror.reauthenticated"
PUBLISH_DESCRIPTION = "Published via agentmirror"


@runtime_checkable
class RemoteGateway(Protocol):
    """Remote operations consumed by pull and push."""

    async def list_projects(self) -> list[ProjectMetadata]: ...

    async def get_project(self, project_id: str) -> ProjectMetadata: ...

    async def list_agents(self, project_id: str) -> list[RemoteAgent]: ...

    async def list_flow_skills(self, flow_id: str) -> list[RemoteSkill]: ...

    async def list_flow_events(self, flow_id: str) -> list[EventDescriptor]: ...

    async def list_flow_states(self, flow_id: str) -> list[StateDescriptor]: ...

    async def get_skill(self, skill_id: str) -> RemoteSkill: ...

    async def list_customer_attributes(self) -> list[CustomerAttribute]: ...

    async def create_agent(self, project_id: str, agent: AgentMetadata) -> str: ...

    async def create_flow(self, agent_id: str, flow: FlowMetadata) -> str: ...

    async def create_skill(self, flow_id: str, skill: SkillMetadata, script: str) -> str: ...

    async def update_skill(self, skill_id: str, skill: SkillMetadata, script: str) -> None: ...

    async def create_event(self, flow_id: str, event: EventDescriptor) -> str: ...

    async def create_state(self, flow_id: str, state: StateDescriptor) -> str: ...

    async def update_customer_attribute(self, attribute: CustomerAttribute) -> None: ...

    async def publish_flow(self, flow_id: str) -> None: ...

    async def aclose(self) -> None: ...


def _skill_payload(skill: SkillMetadata, script: str) -> dict[str, Any]:
    return {
        "idn": skill.idn,
        "title": skill.title,
        "prompt_script": script,
        "runner_type": skill.runner_type.value,
        "model": skill.model.model_dump(),
        "parameters": [p.model_dump() for p in skill.parameters],
        "path": skill.path or None,
    }


class HttpGateway:
    """
    RemoteGateway over httpx.

    Example:
        >>> async with HttpGateway("https://app.newo.ai", api_key) as gateway:
        ...     projects = await gateway.list_projects()
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        token_cache: Optional[Path] = None,
        timeout: float = 30.0,
        retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._tokens = TokenProvider(self._client, api_key, token_cache)
        self._retry = retry or RetryPolicy()

    async def __aenter__(self) -> HttpGateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, request: httpx.Request, action: str) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.HTTPError as e:
            raise GatewayError(f"{action} failed: {e}") from e

    async def _send_once(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        token = await self._tokens.get_token()
        request = self._client.build_request(
            method,
            path,
            json=json,
            params=params,
            headers={"Authorization": f"Bearer {token}", "accept": "application/json"},
        )
        response = await self._send(request, action)

        if response.status_code == 401 and not request.extensions.get(RETRIED_EXTENSION):
            logger.debug("%s %s: 401, re-authenticating", method, path)
            await response.aclose()
            fresh = await self._tokens.reauthenticate(token)
            request.headers["Authorization"] = f"Bearer {fresh}"
            request.extensions[RETRIED_EXTENSION] = True
            response = await self._send(request, action)

        if response.is_error:
            raise GatewayError.from_response(response, action)
        return response

    async def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        response = await call_with_retry(
            lambda: self._send_once(method, path, action=action, json=json, params=params),
            self._retry,
            label=f"{method} {path}",
        )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _id_of(data: Any) -> str:
        if isinstance(data, dict):
            value = data.get("id")
            return str(value) if value else ""
        return ""

    @staticmethod
    def _items(data: Any, key: str = "items") -> list[Any]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get(key), list):
            return data[key]
        return []

    @staticmethod
    def _parse(model: type[R], data: Any, action: str) -> R:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise GatewayError(f"{action} returned an invalid record: {e}") from e

    def _parse_items(
        self, model: type[R], data: Any, action: str, key: str = "items"
    ) -> list[R]:
        return [self._parse(model, item, action) for item in self._items(data, key)]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_projects(self) -> list[ProjectMetadata]:
        data = await self._request("GET", "/api/v1/designer/projects", action="List projects")
        return self._parse_items(ProjectMetadata, data, "List projects")

    async def get_project(self, project_id: str) -> ProjectMetadata:
        data = await self._request(
            "GET", f"/api/v1/designer/projects/by-id/{project_id}", action="Get project"
        )
        return self._parse(ProjectMetadata, data, "Get project")

    async def list_agents(self, project_id: str) -> list[RemoteAgent]:
        data = await self._request(
            "GET",
            "/api/v1/bff/agents/list",
            params={"project_id": project_id},
            action="List agents",
        )
        return self._parse_items(RemoteAgent, data, "List agents")

    async def list_flow_skills(self, flow_id: str) -> list[RemoteSkill]:
        data = await self._request(
            "GET", f"/api/v1/designer/flows/{flow_id}/skills", action="List skills"
        )
        return self._parse_items(RemoteSkill, data, "List skills")

    async def list_flow_events(self, flow_id: str) -> list[EventDescriptor]:
        data = await self._request(
            "GET", f"/api/v1/designer/flows/{flow_id}/events", action="List events"
        )
        return self._parse_items(EventDescriptor, data, "List events")

    async def list_flow_states(self, flow_id: str) -> list[StateDescriptor]:
        data = await self._request(
            "GET", f"/api/v1/designer/flows/{flow_id}/states", action="List states"
        )
        return self._parse_items(StateDescriptor, data, "List states")

    async def get_skill(self, skill_id: str) -> RemoteSkill:
        data = await self._request("GET", f"/api/v1/designer/skills/{skill_id}", action="Get skill")
        return self._parse(RemoteSkill, data, "Get skill")

    async def list_customer_attributes(self) -> list[CustomerAttribute]:
        """All attributes of the customer, hidden ones included."""
        data = await self._request(
            "GET",
            "/api/v1/bff/customer/attributes",
            params={"include_hidden": "true"},
            action="List attributes",
        )
        return self._parse_items(CustomerAttribute, data, "List attributes", key="attributes")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_agent(self, project_id: str, agent: AgentMetadata) -> str:
        data = await self._request(
            "POST",
            f"/api/v2/designer/{project_id}/agents",
            json={"idn": agent.idn, "title": agent.title, "description": agent.description},
            action="Create agent",
        )
        return self._id_of(data)

    async def create_flow(self, agent_id: str, flow: FlowMetadata) -> str:
        """Create an empty flow. Returns "" when the platform does not echo an id."""
        data = await self._request(
            "POST",
            f"/api/v1/designer/{agent_id}/flows/empty",
            json={"idn": flow.idn, "title": flow.title},
            action="Create flow",
        )
        return self._id_of(data)

    async def create_skill(self, flow_id: str, skill: SkillMetadata, script: str) -> str:
        data = await self._request(
            "POST",
            f"/api/v1/designer/flows/{flow_id}/skills",
            json=_skill_payload(skill, script),
            action="Create skill",
        )
        return self._id_of(data)

    async def update_skill(self, skill_id: str, skill: SkillMetadata, script: str) -> None:
        payload = _skill_payload(skill, script)
        payload["id"] = skill_id
        await self._request(
            "PUT",
            f"/api/v1/designer/flows/skills/{skill_id}",
            json=payload,
            action="Update skill",
        )

    async def create_event(self, flow_id: str, event: EventDescriptor) -> str:
        data = await self._request(
            "POST",
            f"/api/v1/designer/flows/{flow_id}/events",
            json=event.model_dump(exclude={"id"}),
            action="Create event",
        )
        return self._id_of(data)

    async def create_state(self, flow_id: str, state: StateDescriptor) -> str:
        data = await self._request(
            "POST",
            f"/api/v1/designer/flows/{flow_id}/states",
            json=state.model_dump(exclude={"id"}),
            action="Create state",
        )
        return self._id_of(data)

    async def update_customer_attribute(self, attribute: CustomerAttribute) -> None:
        if not attribute.id:
            raise GatewayError(f"Attribute {attribute.idn} has no id")
        await self._request(
            "PUT",
            f"/api/v1/customer/attributes/{attribute.id}",
            json=attribute.model_dump(exclude={"id"}),
            action="Update attribute",
        )

    async def publish_flow(self, flow_id: str) -> None:
        await self._request(
            "POST",
            f"/api/v1/designer/flows/{flow_id}/publish",
            json={"version": "1.0", "description": PUBLISH_DESCRIPTION, "type": "public"},
            action="Publish flow",
        )
