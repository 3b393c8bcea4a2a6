"""
Pull reconciler: remote tree -> local files.

One customer's pull runs in this order:

    1. Fetch projects, then each project's agents (with nested flows), then
       every flow's skills, events and states. Flow-level fetches run
       concurrently, bounded by a semaphore.
    2. Write metadata and scripts sequentially, parents first. Metadata is
       remote-authoritative and always rewritten. A script whose content
       differs from the local file goes through the overwrite gate.
    3. Fetch the customer attributes and rewrite attributes.yaml, unless it
       holds local edits that differ from the platform. A failed fetch is a
       warning; the previous file and ledger entry are kept.
    4. Save the map rebuilt from the fetched tree.
    5. Offer every entity folder with a metadata file that is absent from the
       new map for deletion, one prompt per removed subtree.
    6. Regenerate the projection and save the ledger.

A "quit" answer stops the run at once. The ledger entries gathered so far
are merged over the previous ledger and saved; the map is only saved once
step 2 has completed.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from agentmirror.core.gateway.client import RemoteGateway
from agentmirror.core.gateway.errors import GatewayError
from agentmirror.core.gateway.models import RemoteAgent, RemoteSkill
from agentmirror.core.ledger.store import LedgerStore, compute_digest
from agentmirror.core.projection.service import write_projection
from agentmirror.core.skills.files import UnreadableScriptFileError, read_script, script_paths
from agentmirror.core.sync.confirm import (
    Confirm,
    ConfirmGate,
    ConfirmKind,
    ConfirmRequest,
    PullAborted,
)
from agentmirror.core.sync.models import PullResult
from agentmirror.core.sync.scan import scan_unmapped, topmost
from agentmirror.core.tree.attributes import dump_attributes
from agentmirror.core.tree.layout import TreeLayout
from agentmirror.core.tree.metadata import MetadataError, read_metadata_text, write_metadata
from agentmirror.core.tree.models import (
    EntityAddress,
    EventDescriptor,
    FlowMetadata,
    ProjectMap,
    ProjectMetadata,
    StateDescriptor,
)
from agentmirror.core.tree.store import MapStore
from agentmirror.utils.fileio import write_text

logger = logging.getLogger(__name__)


@dataclass
class _FlowSnapshot:
    flow: FlowMetadata
    skills: list[RemoteSkill] = field(default_factory=list)
    events: list[EventDescriptor] = field(default_factory=list)
    states: list[StateDescriptor] = field(default_factory=list)


@dataclass
class _AgentSnapshot:
    agent: RemoteAgent
    flows: list[_FlowSnapshot] = field(default_factory=list)


@dataclass
class _ProjectSnapshot:
    project: ProjectMetadata
    agents: list[_AgentSnapshot] = field(default_factory=list)


class PullReconciler:
    """
    Mirror one customer's remote tree onto the local tree.

    Example:
        >>> reconciler = PullReconciler(gateway, layout, TerminalConfirmer())
        >>> result = await reconciler.run()
        >>> print(result.summary())
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        layout: TreeLayout,
        confirm: Confirm,
        *,
        force: bool = False,
        concurrency: int = 5,
        project_id: Optional[str] = None,
    ) -> None:
        self.gateway = gateway
        self.layout = layout
        self.project_id = project_id
        self.concurrency = concurrency
        self._overwrite = ConfirmGate(confirm, all_mode=force)
        self._delete = ConfirmGate(confirm)
        self._map_store = MapStore(layout)
        self._ledger_store = LedgerStore(layout)
        self._previous: dict[str, str] = {}
        self._fresh: dict[str, str] = {}

    async def run(self) -> PullResult:
        """
        Raises:
            PullAborted: The operator answered "quit"
            GatewayError: A fetch the tree depends on failed
            LedgerError, MapStoreError: Existing state files are unreadable
        """
        self.layout.ensure()
        result = PullResult(customer_idn=self.layout.customer_idn)
        previous_map = self._map_store.load_or_empty()
        self._previous = self._ledger_store.load()
        self._fresh = {}

        try:
            snapshots = await self._fetch()
            project_map = ProjectMap()
            for snapshot in snapshots:
                self._write_project(snapshot, project_map, result)
        except PullAborted:
            self._save_partial_ledger()
            raise

        await self._pull_attributes(result)

        pulled = set(project_map.projects)
        if self.project_id is not None:
            for idn, node in previous_map.projects.items():
                project_map.projects.setdefault(idn, node)
            self._carry_other_projects(pulled)

        self._map_store.save(project_map)

        try:
            self._detect_deletions(project_map, pulled, result)
        except PullAborted:
            self._save_partial_ledger()
            raise

        projection = write_projection(self.layout, project_map)
        self._fresh[self.layout.key(self.layout.projection_path)] = compute_digest(projection)
        self._ledger_store.save(self._fresh)

        logger.info("Pull %s: %s", self.layout.customer_idn, result.summary())
        return result

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def _fetch(self) -> list[_ProjectSnapshot]:
        if self.project_id is not None:
            projects = [await self.gateway.get_project(self.project_id)]
        else:
            projects = await self.gateway.list_projects()

        semaphore = asyncio.Semaphore(self.concurrency)
        snapshots = []
        for project in projects:
            snapshot = _ProjectSnapshot(project=project)
            agents = await self.gateway.list_agents(project.id)
            for agent in agents:
                snapshot.agents.append(
                    _AgentSnapshot(agent=agent, flows=[_FlowSnapshot(flow=f) for f in agent.flows])
                )
            flows = [f for a in snapshot.agents for f in a.flows]
            await asyncio.gather(*(self._fetch_flow(f, semaphore) for f in flows))
            snapshots.append(snapshot)
            logger.debug(
                "Fetched project %s: %d agent(s), %d flow(s)", project.idn, len(agents), len(flows)
            )
        return snapshots

    async def _fetch_flow(self, snapshot: _FlowSnapshot, semaphore: asyncio.Semaphore) -> None:
        flow_id = snapshot.flow.id
        async with semaphore:
            snapshot.skills = await self.gateway.list_flow_skills(flow_id)
        async with semaphore:
            try:
                snapshot.events = await self.gateway.list_flow_events(flow_id)
            except GatewayError as e:
                logger.warning("No events for flow %s: %s", snapshot.flow.idn, e)
        async with semaphore:
            try:
                snapshot.states = await self.gateway.list_flow_states(flow_id)
            except GatewayError as e:
                logger.warning("No state fields for flow %s: %s", snapshot.flow.idn, e)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def _record(self, path: Path, content: str) -> None:
        self._fresh[self.layout.key(path)] = compute_digest(content)

    def _write_metadata(self, address: EntityAddress, metadata: BaseModel) -> None:
        path = self.layout.metadata_path(address)
        self._record(path, write_metadata(path, metadata))

    def _write_project(
        self, snapshot: _ProjectSnapshot, project_map: ProjectMap, result: PullResult
    ) -> None:
        project = snapshot.project
        address = EntityAddress(project.idn)
        self._write_metadata(address, project)
        project_map.bind(address, project.id)
        result.projects += 1

        for agent_snapshot in snapshot.agents:
            agent = agent_snapshot.agent
            agent_address = address.child(agent.idn)
            self._write_metadata(agent_address, agent.to_metadata())
            project_map.bind(agent_address, agent.id)
            result.agents += 1

            for flow_snapshot in agent_snapshot.flows:
                flow = flow_snapshot.flow.model_copy(
                    update={"events": flow_snapshot.events, "state_fields": flow_snapshot.states}
                )
                flow_address = agent_address.child(flow.idn)
                self._write_metadata(flow_address, flow)
                project_map.bind(flow_address, flow.id)
                result.flows += 1

                for skill in flow_snapshot.skills:
                    skill_address = flow_address.child(skill.idn)
                    self._write_metadata(skill_address, skill.to_metadata())
                    project_map.bind(
                        skill_address, skill.id, title=skill.title, runner_type=skill.runner_type
                    )
                    result.skills += 1
                    self._write_script(skill_address, skill, result)

    def _write_script(self, address: EntityAddress, skill: RemoteSkill, result: PullResult) -> None:
        target = self.layout.script_path(address, skill.runner_type)
        remote = skill.prompt_script
        remote_digest = compute_digest(remote)
        existing = script_paths(self.layout.entity_dir(address))

        if not existing:
            write_text(target, remote)
            self._record(target, remote)
            result.scripts_written += 1
            return

        if len(existing) > 1:
            names = ", ".join(p.name for p in existing)
            logger.error("Skipping script of %s: ambiguous script files (%s)", address, names)
            result.invalid_skills.append(f"{address}: ambiguous script files ({names})")
            for path in existing:
                self._carry(self.layout.key(path))
            return

        try:
            local = read_script(existing[0])
        except UnreadableScriptFileError as e:
            logger.error("Skipping script of %s: %s", address, e)
            result.invalid_skills.append(f"{address}: {e}")
            self._carry(self.layout.key(existing[0]))
            return

        if compute_digest(local.content) == remote_digest:
            if local.path != target:
                write_text(target, remote)
                local.path.unlink()
                logger.debug("Renamed %s -> %s", local.path.name, target.name)
                result.scripts_renamed += 1
            else:
                result.scripts_unchanged += 1
            self._record(target, remote)
            return

        request = ConfirmRequest(
            kind=ConfirmKind.OVERWRITE,
            address=address,
            path=local.path,
            local_content=local.content,
            remote_content=remote,
            remote_id=skill.id,
        )
        if self._overwrite.ask(request):
            write_text(target, remote)
            if local.path != target:
                local.path.unlink()
            self._record(target, remote)
            result.scripts_written += 1
        else:
            logger.info("Kept local changes in %s", address)
            self._carry(self.layout.key(local.path))
            result.conflicts_kept.append(address)

    async def _pull_attributes(self, result: PullResult) -> None:
        path = self.layout.attributes_path
        key = self.layout.key(path)
        try:
            attributes = await self.gateway.list_customer_attributes()
        except GatewayError as e:
            logger.warning(
                "Could not fetch attributes of %s: %s", self.layout.customer_idn, e
            )
            self._carry(key)
            return

        content = dump_attributes(attributes)
        result.attributes = len(attributes)
        try:
            local = read_metadata_text(path)
        except MetadataError:
            local = ""
        if local is not None and local != content:
            edited = self._previous.get(key) != compute_digest(local)
            if edited:
                logger.warning("Keeping local edits in %s; push them first", key)
                self._carry(key)
                result.attributes_kept = True
                return

        write_text(path, content)
        self._record(path, content)

    def _carry(self, key: str) -> None:
        """Keep the previous ledger entry for a file this run did not write."""
        if key in self._previous:
            self._fresh[key] = self._previous[key]

    def _carry_other_projects(self, pulled: set[str]) -> None:
        prefixes = tuple(
            self.layout.key(self.layout.entity_dir(EntityAddress(idn))) + "/" for idn in pulled
        )
        for key, digest in self._previous.items():
            if not key.startswith(prefixes):
                self._fresh.setdefault(key, digest)

    def _save_partial_ledger(self) -> None:
        merged = {**self._previous, **self._fresh}
        self._ledger_store.save(merged)
        logger.info("Pull cancelled; saved %d ledger entries", len(merged))

    # ------------------------------------------------------------------
    # Remote deletions
    # ------------------------------------------------------------------

    def _detect_deletions(
        self,
        project_map: ProjectMap,
        pulled: set[str],
        result: PullResult,
    ) -> None:
        candidates = topmost(scan_unmapped(self.layout, project_map))
        if self.project_id is not None:
            candidates = [c for c in candidates if c.address.project in pulled]

        for entity in candidates:
            request = ConfirmRequest(
                kind=ConfirmKind.DELETE,
                address=entity.address,
                path=self.layout.entity_dir(entity.address),
                remote_id=entity.remote_id,
            )
            if self._delete.ask(request):
                shutil.rmtree(request.path)
                logger.info("Deleted local %s %s", entity.kind.value, entity.address)
                result.deleted.append(entity.address)
            else:
                result.kept.append(entity.address)
