"""
Metadata projector: one consolidated flows.yaml per customer.

The document is derived from the map plus the local metadata files and is
never read back. Unreadable metadata is logged and replaced by defaults so a
hand-edited tree still projects.

Enum-valued fields are written with an `!enum` tag:

    runner_type: !enum "RunnerType.guidance"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel

from agentmirror.core.skills.files import script_file_name, script_paths
from agentmirror.core.tree.layout import TreeLayout
from agentmirror.core.tree.metadata import MetadataError, read_metadata
from agentmirror.core.tree.models import (
    AgentMetadata,
    EntityAddress,
    FlowMetadata,
    ProjectMap,
    SkillMetadata,
)
from agentmirror.utils.fileio import write_text

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class EnumRef:
    """A platform enum value, rendered as `!enum "<Type>.<value>"`."""

    value: str


class _ProjectionDumper(yaml.SafeDumper):
    pass


def _represent_enum(dumper: yaml.SafeDumper, data: EnumRef) -> yaml.Node:
    return dumper.represent_scalar("!enum", data.value, style='"')


_ProjectionDumper.add_representer(EnumRef, _represent_enum)


def _load(layout: TreeLayout, address: EntityAddress, model: type[M], fallback: M) -> M:
    try:
        return read_metadata(layout.metadata_path(address), model)
    except MetadataError as e:
        logger.warning("Projecting %s with defaults: %s", address, e)
        return fallback


def _script_reference(layout: TreeLayout, address: EntityAddress, skill: SkillMetadata) -> str:
    folder = layout.entity_dir(address)
    scripts = script_paths(folder)
    path = scripts[0] if len(scripts) == 1 else folder / script_file_name(
        address.slug, skill.runner_type
    )
    return path.relative_to(layout.projects_dir).as_posix()


def _skill_entry(layout: TreeLayout, address: EntityAddress, skill: SkillMetadata) -> dict[str, Any]:
    return {
        "idn": skill.idn,
        "title": skill.title,
        "prompt_script": _script_reference(layout, address, skill),
        "runner_type": EnumRef(f"RunnerType.{skill.runner_type.value}"),
        "model": {
            "model_idn": skill.model.model_idn,
            "provider_idn": skill.model.provider_idn,
        },
        "parameters": [
            {"name": p.name, "default_value": p.default_value or " "} for p in skill.parameters
        ],
    }


def _flow_entry(flow: FlowMetadata, skills: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "idn": flow.idn,
        "title": flow.title,
        "description": flow.description or None,
        "default_runner_type": EnumRef(f"RunnerType.{flow.default_runner_type.value}"),
        "default_provider_idn": flow.default_model.provider_idn,
        "default_model_idn": flow.default_model.model_idn,
        "skills": skills,
        "events": [
            {
                "title": event.description,
                "idn": event.idn,
                "skill_selector": EnumRef(f"SkillSelector.{event.skill_selector}"),
                "skill_idn": event.skill_idn or None,
                "state_idn": event.state_idn or None,
                "integration_idn": event.integration_idn or None,
                "connector_idn": event.connector_idn or None,
                "interrupt_mode": EnumRef(f"InterruptMode.{event.interrupt_mode}"),
            }
            for event in flow.events
        ],
        "state_fields": [
            {
                "title": state.title,
                "idn": state.idn,
                "default_value": state.default_value or None,
                "scope": EnumRef(f"StateFieldScope.{state.scope}"),
            }
            for state in flow.state_fields
        ],
    }


def build_projection(layout: TreeLayout, project_map: ProjectMap) -> dict[str, Any]:
    """Assemble the projection document for every agent in the map."""
    agents = []
    for agent_address, agent_node in project_map.iter_agents():
        agent = _load(layout, agent_address, AgentMetadata, AgentMetadata(idn=agent_address.slug))

        agent_flows = []
        for flow_idn in agent_node.flows:
            flow_address = agent_address.child(flow_idn)
            flow = _load(layout, flow_address, FlowMetadata, FlowMetadata(idn=flow_idn))

            skills = []
            for skill_idn, skill_node in agent_node.flows[flow_idn].skills.items():
                skill_address = flow_address.child(skill_idn)
                fallback = SkillMetadata(
                    idn=skill_idn, title=skill_node.title, runner_type=skill_node.runner_type
                )
                skill = _load(layout, skill_address, SkillMetadata, fallback)
                skills.append(_skill_entry(layout, skill_address, skill))

            agent_flows.append(_flow_entry(flow, skills))

        agents.append(
            {
                "agent_idn": agent.idn,
                "agent_description": agent.description or None,
                "agent_flows": agent_flows,
            }
        )
    return {"flows": agents}


def render_projection(document: dict[str, Any]) -> str:
    return yaml.dump(
        document,
        Dumper=_ProjectionDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=4096,
    )


def write_projection(layout: TreeLayout, project_map: ProjectMap) -> str:
    """
    Regenerate flows.yaml.

    Returns:
        The text written, for hashing by the caller
    """
    content = render_projection(build_projection(layout, project_map))
    write_text(layout.projection_path, content)
    logger.debug("Wrote projection %s", layout.projection_path)
    return content
