"""
Data models for the entity tree.

Two families of models live here:

- Metadata documents: the contents of each entity folder's metadata.yaml
  (ProjectMetadata, AgentMetadata, FlowMetadata, SkillMetadata). These are
  remote-authoritative and rewritten on every pull.
  CustomerAttributes is the one document that lives at the customer level.
- The map: ProjectMap -> ProjectNode -> AgentNode -> FlowNode -> SkillNode,
  binding local slugs to remote ids. Containment runs parent to child only;
  a child that needs its parent's id resolves it through an EntityAddress
  lookup on the map.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RunnerKind(str, Enum):
    """Script dialect of a skill; determines the script file extension."""

    GUIDANCE = "guidance"
    NSL = "nsl"

    @property
    def extension(self) -> str:
        """File extension (without dot) for scripts of this dialect."""
        return "jinja" if self is RunnerKind.NSL else "guidance"

    @classmethod
    def from_extension(cls, extension: str) -> RunnerKind:
        ext = extension.lower().lstrip(".")
        if ext == "jinja":
            return cls.NSL
        if ext == "guidance":
            return cls.GUIDANCE
        raise ValueError(f"Unrecognized script extension: {extension}")


class EntityKind(str, Enum):
    PROJECT = "project"
    AGENT = "agent"
    FLOW = "flow"
    SKILL = "skill"


@dataclass(frozen=True)
class EntityAddress:
    """
    Slug path to an entity: project[/agent[/flow[/skill]]].

    Example:
        >>> addr = EntityAddress("shop", "support", "main", "greet")
        >>> addr.kind
        <EntityKind.SKILL: 'skill'>
        >>> addr.display
        'shop/support/main/greet'
        >>> addr.parent.display
        'shop/support/main'
    """

    project: str
    agent: Optional[str] = None
    flow: Optional[str] = None
    skill: Optional[str] = None

    def __post_init__(self) -> None:
        parts = [self.agent, self.flow, self.skill]
        # A level can only be set when every level above it is set.
        seen_gap = False
        for part in parts:
            if part is None:
                seen_gap = True
            elif seen_gap:
                raise ValueError(f"Incomplete entity address: {self._parts()}")

    def _parts(self) -> list[str]:
        return [p for p in (self.project, self.agent, self.flow, self.skill) if p is not None]

    @property
    def kind(self) -> EntityKind:
        if self.skill is not None:
            return EntityKind.SKILL
        if self.flow is not None:
            return EntityKind.FLOW
        if self.agent is not None:
            return EntityKind.AGENT
        return EntityKind.PROJECT

    @property
    def slug(self) -> str:
        return self._parts()[-1]

    @property
    def display(self) -> str:
        return "/".join(self._parts())

    @property
    def parent(self) -> Optional[EntityAddress]:
        parts = self._parts()
        if len(parts) == 1:
            return None
        return EntityAddress(*parts[:-1])

    def child(self, slug: str) -> EntityAddress:
        parts = self._parts()
        if len(parts) == 4:
            raise ValueError("Skills have no child entities")
        return EntityAddress(*parts, slug)

    def __str__(self) -> str:
        return self.display


# ---------------------------------------------------------------------------
# Metadata documents
# ---------------------------------------------------------------------------


class PlatformRecord(BaseModel):
    """
    Base for records the platform sends. A null field takes its default.

    Example:
        >>> AgentMetadata.model_validate({"idn": "support", "title": None}).title
        ''
    """

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def null_is_default(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class ModelRef(PlatformRecord):
    """Language model used by a flow or skill."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    model_idn: str = ""
    provider_idn: str = ""


class SkillParameter(PlatformRecord):
    name: str
    default_value: str = ""


class EventDescriptor(PlatformRecord):
    """An event a flow reacts to. `id` is empty until pushed."""

    id: str = ""
    idn: str
    description: str = ""
    skill_selector: str = "skill_idn"
    skill_idn: Optional[str] = None
    state_idn: Optional[str] = None
    integration_idn: Optional[str] = None
    connector_idn: Optional[str] = None
    interrupt_mode: str = "queue"


class StateDescriptor(PlatformRecord):
    """A state field scoped to a flow. `id` is empty until pushed."""

    id: str = ""
    idn: str
    title: str = ""
    default_value: Optional[str] = None
    scope: str = "user"


class ProjectMetadata(PlatformRecord):
    id: str = ""
    idn: str
    title: str = ""
    description: str = ""
    created_at: str = ""
    updated_at: str = ""


class AgentMetadata(PlatformRecord):
    id: str = ""
    idn: str
    title: str = ""
    description: str = ""


class FlowMetadata(PlatformRecord):
    id: str = ""
    idn: str
    title: str = ""
    description: str = ""
    default_runner_type: RunnerKind = RunnerKind.GUIDANCE
    default_model: ModelRef = Field(default_factory=ModelRef)
    events: list[EventDescriptor] = Field(default_factory=list)
    state_fields: list[StateDescriptor] = Field(default_factory=list)


class SkillMetadata(PlatformRecord):
    id: str = ""
    idn: str
    title: str = ""
    runner_type: RunnerKind = RunnerKind.GUIDANCE
    model: ModelRef = Field(default_factory=ModelRef)
    parameters: list[SkillParameter] = Field(default_factory=list)
    path: str = ""


class CustomerAttribute(PlatformRecord):
    """
    A customer-level setting.

    Values are kept as text; structured values arrive as compact JSON.
    """

    id: str = ""
    idn: str
    value: str = ""
    title: str = ""
    description: str = ""
    group: str = ""
    is_hidden: bool = False
    possible_values: list[Any] = Field(default_factory=list)
    value_type: str = "string"

    @field_validator("value", mode="before")
    @classmethod
    def value_as_text(cls, v: Any) -> Any:
        if isinstance(v, (dict, list, bool, int, float)):
            return json.dumps(v, separators=(",", ":"))
        return v


class CustomerAttributes(PlatformRecord):
    """Contents of a customer's attributes.yaml."""

    attributes: list[CustomerAttribute] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Map
# ---------------------------------------------------------------------------


class SkillNode(BaseModel):
    id: str = ""
    title: str = ""
    runner_type: RunnerKind = RunnerKind.GUIDANCE


class FlowNode(BaseModel):
    id: str = ""
    skills: dict[str, SkillNode] = Field(default_factory=dict)


class AgentNode(BaseModel):
    id: str = ""
    flows: dict[str, FlowNode] = Field(default_factory=dict)


class ProjectNode(BaseModel):
    id: str = ""
    idn: str = ""
    agents: dict[str, AgentNode] = Field(default_factory=dict)


class ProjectMap(BaseModel):
    """
    Persisted id/slug binding of a customer's whole tree.

    Example:
        >>> pm = ProjectMap()
        >>> pm.projects["shop"] = ProjectNode(id="p1", idn="shop")
        >>> pm.bound_id(EntityAddress("shop"))
        'p1'
    """

    projects: dict[str, ProjectNode] = Field(default_factory=dict)

    def project(self, address: EntityAddress) -> Optional[ProjectNode]:
        return self.projects.get(address.project)

    def agent(self, address: EntityAddress) -> Optional[AgentNode]:
        project = self.project(address)
        if project is None or address.agent is None:
            return None
        return project.agents.get(address.agent)

    def flow(self, address: EntityAddress) -> Optional[FlowNode]:
        agent = self.agent(address)
        if agent is None or address.flow is None:
            return None
        return agent.flows.get(address.flow)

    def skill(self, address: EntityAddress) -> Optional[SkillNode]:
        flow = self.flow(address)
        if flow is None or address.skill is None:
            return None
        return flow.skills.get(address.skill)

    def node(
        self, address: EntityAddress
    ) -> ProjectNode | AgentNode | FlowNode | SkillNode | None:
        lookup = {
            EntityKind.PROJECT: self.project,
            EntityKind.AGENT: self.agent,
            EntityKind.FLOW: self.flow,
            EntityKind.SKILL: self.skill,
        }[address.kind]
        return lookup(address)

    def contains(self, address: EntityAddress) -> bool:
        return self.node(address) is not None

    def bound_id(self, address: EntityAddress) -> str:
        """Remote id bound to an address, or "" when absent or unbound."""
        node = self.node(address)
        return node.id if node is not None else ""

    def bind(
        self,
        address: EntityAddress,
        remote_id: str,
        *,
        title: str = "",
        runner_type: RunnerKind = RunnerKind.GUIDANCE,
    ) -> None:
        """
        Insert or update the node at address with a remote id.

        The parent must already be present in the map.

        Raises:
            KeyError: If the parent is missing
        """
        kind = address.kind
        if kind is EntityKind.PROJECT:
            node = self.projects.setdefault(address.project, ProjectNode(idn=address.project))
            node.id = remote_id
            return

        parent = address.parent
        assert parent is not None
        parent_node = self.node(parent)
        if parent_node is None:
            raise KeyError(f"Parent of {address.display} is not in the map")

        if kind is EntityKind.AGENT:
            assert isinstance(parent_node, ProjectNode)
            agent = parent_node.agents.setdefault(address.slug, AgentNode())
            agent.id = remote_id
        elif kind is EntityKind.FLOW:
            assert isinstance(parent_node, AgentNode)
            flow = parent_node.flows.setdefault(address.slug, FlowNode())
            flow.id = remote_id
        else:
            assert isinstance(parent_node, FlowNode)
            parent_node.skills[address.slug] = SkillNode(
                id=remote_id, title=title, runner_type=runner_type
            )

    def iter_agents(self) -> Iterator[tuple[EntityAddress, AgentNode]]:
        for project_idn, project in self.projects.items():
            for agent_idn, agent in project.agents.items():
                yield EntityAddress(project_idn, agent_idn), agent

    def iter_flows(self) -> Iterator[tuple[EntityAddress, FlowNode]]:
        for address, agent in self.iter_agents():
            for flow_idn, flow in agent.flows.items():
                yield address.child(flow_idn), flow

    def iter_skills(self) -> Iterator[tuple[EntityAddress, SkillNode]]:
        for address, flow in self.iter_flows():
            for skill_idn, skill in flow.skills.items():
                yield address.child(skill_idn), skill

    def iter_addresses(self) -> Iterator[EntityAddress]:
        """Every entity address, parents before children."""
        for project_idn in self.projects:
            yield EntityAddress(project_idn)
        for address, _ in self.iter_agents():
            yield address
        for address, _ in self.iter_flows():
            yield address
        for address, _ in self.iter_skills():
            yield address
