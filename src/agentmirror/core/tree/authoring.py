"""
Local authoring of entities.

These operations only touch the local tree. A created entity gets a
metadata.yaml with an empty id, which makes it "local-only" until the next
push creates it remotely and writes the assigned id back. A deleted entity
only loses its local folder; deletions are never pushed.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from agentmirror.core.tree.layout import TreeLayout
from agentmirror.core.tree.metadata import read_metadata, write_metadata
from agentmirror.core.tree.models import (
    AgentMetadata,
    EntityAddress,
    EntityKind,
    EventDescriptor,
    FlowMetadata,
    ModelRef,
    RunnerKind,
    SkillMetadata,
    SkillParameter,
    StateDescriptor,
)
from agentmirror.utils.fileio import write_text

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT = "# Add your skill logic here\n"


class AuthoringError(Exception):
    """Raised when a local create/delete cannot be performed."""

    pass


def _require_parent(layout: TreeLayout, address: EntityAddress) -> None:
    parent = address.parent
    assert parent is not None
    if not layout.metadata_path(parent).is_file():
        raise AuthoringError(
            f"{parent.kind.value.capitalize()} '{parent.display}' not found locally. "
            "Run `agentmirror pull` first or create it."
        )


def _require_free(layout: TreeLayout, address: EntityAddress) -> None:
    if layout.entity_dir(address).exists():
        raise AuthoringError(
            f"{address.kind.value.capitalize()} '{address.slug}' already exists "
            f"in '{address.parent}'"
        )


def create_local_agent(
    layout: TreeLayout,
    address: EntityAddress,
    *,
    title: str = "",
    description: str = "",
) -> Path:
    """Author a new agent folder with an unbound metadata.yaml."""
    if address.kind is not EntityKind.AGENT:
        raise AuthoringError(f"Not an agent address: {address}")
    _require_parent(layout, address)
    _require_free(layout, address)

    path = layout.metadata_path(address)
    write_metadata(
        path,
        AgentMetadata(idn=address.slug, title=title or address.slug, description=description),
    )
    logger.info("Created local agent %s", address)
    return path


def create_local_flow(
    layout: TreeLayout,
    address: EntityAddress,
    *,
    title: str = "",
    description: str = "",
    runner: RunnerKind = RunnerKind.GUIDANCE,
    model: Optional[ModelRef] = None,
) -> Path:
    """Author a new flow folder with an unbound metadata.yaml."""
    if address.kind is not EntityKind.FLOW:
        raise AuthoringError(f"Not a flow address: {address}")
    _require_parent(layout, address)
    _require_free(layout, address)

    path = layout.metadata_path(address)
    write_metadata(
        path,
        FlowMetadata(
            idn=address.slug,
            title=title or address.slug,
            description=description,
            default_runner_type=runner,
            default_model=model or ModelRef(model_idn="gpt4o", provider_idn="openai"),
        ),
    )
    logger.info("Created local flow %s", address)
    return path


def create_local_skill(
    layout: TreeLayout,
    address: EntityAddress,
    *,
    title: str = "",
    runner: RunnerKind = RunnerKind.GUIDANCE,
    model: Optional[ModelRef] = None,
    parameters: Optional[list[SkillParameter]] = None,
    script: str = DEFAULT_SCRIPT,
) -> Path:
    """
    Author a new skill folder: unbound metadata.yaml plus <slug>.<ext>.

    Returns:
        Path of the created script file
    """
    if address.kind is not EntityKind.SKILL:
        raise AuthoringError(f"Not a skill address: {address}")
    _require_parent(layout, address)
    _require_free(layout, address)

    write_metadata(
        layout.metadata_path(address),
        SkillMetadata(
            idn=address.slug,
            title=title or address.slug,
            runner_type=runner,
            model=model or ModelRef(model_idn="gpt4o", provider_idn="openai"),
            parameters=parameters or [],
        ),
    )
    script_path = layout.script_path(address, runner)
    write_text(script_path, script)
    logger.info("Created local skill %s", address)
    return script_path


def _load_flow(layout: TreeLayout, address: EntityAddress) -> FlowMetadata:
    if address.kind is not EntityKind.FLOW:
        raise AuthoringError(f"Not a flow address: {address}")
    path = layout.metadata_path(address)
    if not path.is_file():
        raise AuthoringError(f"Flow '{address.display}' not found locally.")
    return read_metadata(path, FlowMetadata)


def add_local_event(
    layout: TreeLayout, flow_address: EntityAddress, event: EventDescriptor
) -> Path:
    """Append an unbound event to a flow's metadata.yaml."""
    flow = _load_flow(layout, flow_address)
    if any(e.idn == event.idn for e in flow.events):
        raise AuthoringError(f"Event '{event.idn}' already exists in flow '{flow_address}'")
    flow.events.append(event.model_copy(update={"id": ""}))
    path = layout.metadata_path(flow_address)
    write_metadata(path, flow)
    return path


def add_local_state(
    layout: TreeLayout, flow_address: EntityAddress, state: StateDescriptor
) -> Path:
    """Append an unbound state field to a flow's metadata.yaml."""
    flow = _load_flow(layout, flow_address)
    if any(s.idn == state.idn for s in flow.state_fields):
        raise AuthoringError(f"State '{state.idn}' already exists in flow '{flow_address}'")
    flow.state_fields.append(state.model_copy(update={"id": ""}))
    path = layout.metadata_path(flow_address)
    write_metadata(path, flow)
    return path


def delete_local_entity(layout: TreeLayout, address: EntityAddress) -> Path:
    """
    Remove an entity's local folder (and everything below it).

    The remote entity is untouched.
    """
    if address.kind is EntityKind.PROJECT:
        raise AuthoringError("Projects cannot be deleted locally")
    folder = layout.entity_dir(address)
    if not folder.is_dir():
        raise AuthoringError(
            f"{address.kind.value.capitalize()} '{address.display}' not found locally."
        )
    shutil.rmtree(folder)
    logger.info("Deleted local %s %s", address.kind.value, address)
    return folder
