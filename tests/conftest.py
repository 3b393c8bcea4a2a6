"""
Pytest configuration and shared fixtures.

Provides a customer layout in a temp workspace, an in-memory remote gateway
seeded with a small tree, and environment isolation for CLI tests.
"""

import itertools
import os
from typing import Any

import pytest

from agentmirror.core.gateway import GatewayError, RemoteAgent, RemoteSkill
from agentmirror.core.tree import (
    AgentMetadata,
    CustomerAttribute,
    EventDescriptor,
    FlowMetadata,
    ModelRef,
    ProjectMetadata,
    RunnerKind,
    SkillMetadata,
    StateDescriptor,
    TreeLayout,
)

GREET_SCRIPT = "Hello {{user}}\n"
FAREWELL_SCRIPT = "{{#system}}Bye{{/system}}\n"


# ==============================================================================
# In-memory gateway
# ==============================================================================


class FakeGateway:
    """
    RemoteGateway kept entirely in memory.

    Every call is recorded in `calls` as a tuple whose first element is the
    operation name. Set `failures[(operation, key)]` to make a call raise;
    the key is the entity idn for creates and the remote id otherwise.
    """

    def __init__(self) -> None:
        self.projects: list[ProjectMetadata] = []
        self.agents: dict[str, list[RemoteAgent]] = {}
        self.skills: dict[str, list[RemoteSkill]] = {}
        self.events: dict[str, list[EventDescriptor]] = {}
        self.states: dict[str, list[StateDescriptor]] = {}
        self.attributes: list[CustomerAttribute] = []
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.flow_create_returns_id = True
        self.no_id_for: set[str] = set()
        self.closed = False
        self._ids = itertools.count(1)

    # -- seeding --------------------------------------------------------

    def add_project(self, idn: str, project_id: str, title: str = "") -> ProjectMetadata:
        project = ProjectMetadata(id=project_id, idn=idn, title=title or idn.title())
        self.projects.append(project)
        self.agents.setdefault(project_id, [])
        return project

    def add_agent(self, project_id: str, idn: str, agent_id: str) -> RemoteAgent:
        agent = RemoteAgent(id=agent_id, idn=idn, title=idn.title(), description=f"{idn} agent")
        self.agents[project_id].append(agent)
        return agent

    def add_flow(self, agent: RemoteAgent, idn: str, flow_id: str) -> FlowMetadata:
        flow = FlowMetadata(
            id=flow_id,
            idn=idn,
            title=idn.title(),
            default_model=ModelRef(model_idn="gpt4o", provider_idn="openai"),
        )
        agent.flows.append(flow)
        self.skills.setdefault(flow_id, [])
        return flow

    def add_skill(
        self,
        flow_id: str,
        idn: str,
        skill_id: str,
        script: str,
        runner: RunnerKind = RunnerKind.GUIDANCE,
    ) -> RemoteSkill:
        skill = RemoteSkill(
            id=skill_id,
            idn=idn,
            title=idn.title(),
            runner_type=runner,
            model=ModelRef(model_idn="gpt4o", provider_idn="openai"),
            prompt_script=script,
        )
        self.skills.setdefault(flow_id, []).append(skill)
        return skill

    def skill(self, skill_id: str) -> RemoteSkill:
        for skills in self.skills.values():
            for skill in skills:
                if skill.id == skill_id:
                    return skill
        raise KeyError(skill_id)

    def set_script(self, skill_id: str, script: str) -> None:
        self.skill(skill_id).prompt_script = script

    def remove_skill(self, flow_id: str, idn: str) -> None:
        self.skills[flow_id] = [s for s in self.skills[flow_id] if s.idn != idn]

    def calls_to(self, operation: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == operation]

    @property
    def write_calls(self) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if not call[0].startswith(("list_", "get_"))]

    def _call(self, operation: str, key: str, *rest: Any) -> None:
        self.calls.append((operation, key, *rest))
        if (operation, key) in self.failures:
            raise self.failures[(operation, key)]

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # -- reads ----------------------------------------------------------

    async def list_projects(self) -> list[ProjectMetadata]:
        self._call("list_projects", "")
        return list(self.projects)

    async def get_project(self, project_id: str) -> ProjectMetadata:
        self._call("get_project", project_id)
        for project in self.projects:
            if project.id == project_id:
                return project
        raise GatewayError("Get project failed: not found", status_code=404)

    async def list_agents(self, project_id: str) -> list[RemoteAgent]:
        self._call("list_agents", project_id)
        return [a.model_copy(deep=True) for a in self.agents.get(project_id, [])]

    async def list_flow_skills(self, flow_id: str) -> list[RemoteSkill]:
        self._call("list_flow_skills", flow_id)
        return [s.model_copy() for s in self.skills.get(flow_id, [])]

    async def list_flow_events(self, flow_id: str) -> list[EventDescriptor]:
        self._call("list_flow_events", flow_id)
        return list(self.events.get(flow_id, []))

    async def list_flow_states(self, flow_id: str) -> list[StateDescriptor]:
        self._call("list_flow_states", flow_id)
        return list(self.states.get(flow_id, []))

    async def get_skill(self, skill_id: str) -> RemoteSkill:
        self._call("get_skill", skill_id)
        return self.skill(skill_id)

    async def list_customer_attributes(self) -> list[CustomerAttribute]:
        self._call("list_customer_attributes", "")
        return [a.model_copy() for a in self.attributes]

    # -- writes ---------------------------------------------------------

    async def create_agent(self, project_id: str, agent: AgentMetadata) -> str:
        self._call("create_agent", agent.idn, project_id)
        agent_id = self._next_id("agent")
        self.agents.setdefault(project_id, []).append(
            RemoteAgent(id=agent_id, idn=agent.idn, title=agent.title)
        )
        return agent_id

    async def create_flow(self, agent_id: str, flow: FlowMetadata) -> str:
        self._call("create_flow", flow.idn, agent_id)
        flow_id = self._next_id("flow")
        for agents in self.agents.values():
            for agent in agents:
                if agent.id == agent_id:
                    agent.flows.append(FlowMetadata(id=flow_id, idn=flow.idn, title=flow.title))
        self.skills.setdefault(flow_id, [])
        return flow_id if self.flow_create_returns_id else ""

    async def create_skill(self, flow_id: str, skill: SkillMetadata, script: str) -> str:
        self._call("create_skill", skill.idn, flow_id, script)
        skill_id = self._next_id("skill")
        remote = RemoteSkill.model_validate(
            {**skill.model_dump(), "id": skill_id, "prompt_script": script}
        )
        self.skills.setdefault(flow_id, []).append(remote)
        return skill_id

    async def update_skill(self, skill_id: str, skill: SkillMetadata, script: str) -> None:
        self._call("update_skill", skill_id, skill, script)
        remote = self.skill(skill_id)
        remote.title = skill.title
        remote.prompt_script = script

    async def create_event(self, flow_id: str, event: EventDescriptor) -> str:
        self._call("create_event", event.idn, flow_id)
        event_id = self._next_id("event")
        self.events.setdefault(flow_id, []).append(event.model_copy(update={"id": event_id}))
        return "" if "create_event" in self.no_id_for else event_id

    async def create_state(self, flow_id: str, state: StateDescriptor) -> str:
        self._call("create_state", state.idn, flow_id)
        state_id = self._next_id("state")
        self.states.setdefault(flow_id, []).append(state.model_copy(update={"id": state_id}))
        return "" if "create_state" in self.no_id_for else state_id

    async def update_customer_attribute(self, attribute: CustomerAttribute) -> None:
        self._call("update_customer_attribute", attribute.id, attribute)
        self.attributes = [attribute if a.id == attribute.id else a for a in self.attributes]

    async def publish_flow(self, flow_id: str) -> None:
        self._call("publish_flow", flow_id)

    async def aclose(self) -> None:
        self.closed = True


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def layout(tmp_path) -> TreeLayout:
    """Layout of customer 'acme' in a temporary workspace."""
    return TreeLayout(tmp_path, "acme")


@pytest.fixture
def make_gateway():
    """Factory for empty in-memory gateways."""
    return FakeGateway


@pytest.fixture
def gateway() -> FakeGateway:
    """
    Gateway seeded with one small tree:

        shop (p1) / support (a1) / main (f1) / greet (s1, guidance)
                                              / farewell (s2, nsl)

    Flow f1 carries one event and one state field; the customer has two
    attributes.
    """
    fake = FakeGateway()
    fake.add_project("shop", "p1")
    agent = fake.add_agent("p1", "support", "a1")
    fake.add_flow(agent, "main", "f1")
    fake.add_skill("f1", "greet", "s1", GREET_SCRIPT)
    fake.add_skill("f1", "farewell", "s2", FAREWELL_SCRIPT, RunnerKind.NSL)
    fake.events["f1"] = [EventDescriptor(id="e1", idn="user_message", skill_idn="greet")]
    fake.states["f1"] = [StateDescriptor(id="st1", idn="counter", title="Counter")]
    fake.attributes = [
        CustomerAttribute(id="at1", idn="greeting_text", value="Hi there", group="Texts"),
        CustomerAttribute.model_validate(
            {"id": "at2", "idn": "max_turns", "value": 5, "value_type": "number"}
        ),
    ]
    return fake


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Remove AGENTMIRROR_* variables and point XDG_CONFIG_HOME at a temp dir.

    Yields the monkeypatch so tests can set their own variables.
    """
    for key in list(os.environ):
        if key.startswith("AGENTMIRROR_"):
            monkeypatch.delenv(key, raising=False)
    xdg = tmp_path / "xdg"
    xdg.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    yield monkeypatch

