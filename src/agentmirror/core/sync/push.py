"""
Push reconciler: local edits -> remote.

Phase A creates local-only entities in dependency order (agents, flows,
skills, then unbound events and state fields of bound flows). Each new id is
written into the entity's metadata.yaml at once and bound in the in-memory
map so later steps can resolve it.

Phase B pushes drift of bound skills: a script or metadata.yaml whose digest
differs from the ledger triggers update_skill with the current metadata and
the script as it is on disk.

Phase C pushes attributes.yaml when its digest differs from the ledger: every
attribute whose value differs from the platform's is updated. The file's
ledger entry only advances once all of those updates succeeded.

Afterwards the map and projection are saved when anything was created or
metadata changed, the ledger is always saved, and every touched flow is
published unless publishing is disabled. Per-entity failures are recorded
and never stop siblings.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from agentmirror.core.gateway.client import RemoteGateway
from agentmirror.core.gateway.errors import GatewayError
from agentmirror.core.ledger.store import LedgerStore, compute_digest
from agentmirror.core.projection.service import write_projection
from agentmirror.core.skills.files import SkillFolderError, require_single_script
from agentmirror.core.sync.models import (
    CreatedEntity,
    EntityFailure,
    PublishOutcome,
    PushResult,
)
from agentmirror.core.sync.scan import LocalEntity, scan_unmapped
from agentmirror.core.tree.attributes import diff_attributes, parse_attributes
from agentmirror.core.tree.layout import TreeLayout
from agentmirror.core.tree.metadata import (
    MetadataError,
    parse_metadata,
    read_metadata,
    read_metadata_text,
    write_metadata,
)
from agentmirror.core.tree.models import (
    AgentMetadata,
    EntityAddress,
    EntityKind,
    FlowMetadata,
    ProjectMap,
    SkillMetadata,
    SkillNode,
)
from agentmirror.core.tree.store import MapStore

logger = logging.getLogger(__name__)


class PushReconciler:
    """
    Push one customer's local changes.

    Example:
        >>> result = await PushReconciler(gateway, layout, publish=False).run()
        >>> if not result.ok:
        ...     for failure in result.failed:
        ...         print(failure.name, failure.message)
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        layout: TreeLayout,
        *,
        publish: bool = True,
        concurrency: int = 5,
    ) -> None:
        self.gateway = gateway
        self.layout = layout
        self.publish = publish
        self.concurrency = concurrency
        self._map_store = MapStore(layout)
        self._ledger_store = LedgerStore(layout)
        self._map = ProjectMap()
        self._entries: dict[str, str] = {}
        self._touched: set[EntityAddress] = set()
        self._metadata_changed = False
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def run(self) -> PushResult:
        """
        Raises:
            MapStoreError: No map yet (never pulled) or the map is malformed
            LedgerError: The ledger is malformed
        """
        self._map = self._map_store.load()
        self._entries = self._ledger_store.load()
        self._touched = set()
        self._metadata_changed = False
        self._semaphore = asyncio.Semaphore(self.concurrency)
        result = PushResult(customer_idn=self.layout.customer_idn)

        try:
            await self._create_local_only(result)
            await self._push_drift(result)
            await self._push_attributes(result)
        finally:
            self._persist(result)

        if self.publish:
            await self._publish(result)

        logger.info("Push %s: %s", self.layout.customer_idn, result.summary())
        return result

    def _persist(self, result: PushResult) -> None:
        """Save whatever reached the remote, even when a later step raised."""
        if result.created or self._metadata_changed:
            self._map_store.save(self._map)
            projection = write_projection(self.layout, self._map)
            self._record(self.layout.projection_path, projection)
        self._ledger_store.save(self._entries)

    def _record(self, path: Path, content: str) -> None:
        self._entries[self.layout.key(path)] = compute_digest(content)

    def _fail(
        self,
        result: PushResult,
        name: str,
        operation: str,
        error: Exception | str,
    ) -> None:
        reasons = error.reasons if isinstance(error, GatewayError) else []
        message = error.message if isinstance(error, GatewayError) else str(error)
        logger.error("%s %s failed: %s", operation, name, message)
        result.failed.append(EntityFailure(name, operation, message, reasons))

    # ------------------------------------------------------------------
    # Phase A: local-only entities
    # ------------------------------------------------------------------

    async def _create_local_only(self, result: PushResult) -> None:
        pending: dict[EntityKind, list[LocalEntity]] = {kind: [] for kind in EntityKind}
        for entity in scan_unmapped(self.layout, self._map):
            if entity.is_orphan:
                logger.warning(
                    "%s %s is bound to %s but missing from the map; not recreating it",
                    entity.kind.value.capitalize(),
                    entity.address,
                    entity.remote_id,
                )
                result.orphans.append(entity.address)
            else:
                pending[entity.kind].append(entity)

        for entity in pending[EntityKind.PROJECT]:
            self._fail(
                result,
                str(entity.address),
                "create project",
                "projects are created on the platform; pull them first",
            )

        for entity in pending[EntityKind.AGENT]:
            await self._create_agent(entity, result)
        for entity in pending[EntityKind.FLOW]:
            await self._create_flow(entity, result)
        await asyncio.gather(*(self._create_skill(e, result) for e in pending[EntityKind.SKILL]))

        for flow_address, node in list(self._map.iter_flows()):
            if node.id:
                await self._create_flow_fields(flow_address, node.id, result)

    def _parent_id(self, entity: LocalEntity, result: PushResult) -> str:
        parent = entity.address.parent
        assert parent is not None
        parent_id = self._map.bound_id(parent)
        if not parent_id:
            self._fail(
                result,
                str(entity.address),
                f"create {entity.kind.value}",
                f"parent {parent} is not bound",
            )
        return parent_id

    def _bind(
        self,
        entity: LocalEntity,
        metadata: AgentMetadata | FlowMetadata | SkillMetadata,
        remote_id: str,
        result: PushResult,
    ) -> None:
        metadata.id = remote_id
        self._record(entity.metadata_path, write_metadata(entity.metadata_path, metadata))
        if isinstance(metadata, SkillMetadata):
            self._map.bind(
                entity.address,
                remote_id,
                title=metadata.title,
                runner_type=metadata.runner_type,
            )
        else:
            self._map.bind(entity.address, remote_id)
        result.created.append(CreatedEntity(entity.kind.value, str(entity.address), remote_id))
        logger.info("Created %s %s (%s)", entity.kind.value, entity.address, remote_id)

    async def _create_agent(self, entity: LocalEntity, result: PushResult) -> None:
        project_id = self._parent_id(entity, result)
        if not project_id:
            return
        try:
            metadata = read_metadata(entity.metadata_path, AgentMetadata)
            remote_id = await self.gateway.create_agent(project_id, metadata)
            if not remote_id:
                raise GatewayError("Create agent returned no id")
        except (GatewayError, MetadataError) as e:
            self._fail(result, str(entity.address), "create agent", e)
            return
        self._bind(entity, metadata, remote_id, result)

    async def _create_flow(self, entity: LocalEntity, result: PushResult) -> None:
        agent_id = self._parent_id(entity, result)
        if not agent_id:
            return
        try:
            metadata = read_metadata(entity.metadata_path, FlowMetadata)
            remote_id = await self.gateway.create_flow(agent_id, metadata)
            if not remote_id:
                remote_id = await self._resolve_flow_id(entity.address, agent_id)
        except (GatewayError, MetadataError) as e:
            self._fail(result, str(entity.address), "create flow", e)
            return
        self._bind(entity, metadata, remote_id, result)
        self._touched.add(entity.address)

    async def _resolve_flow_id(self, address: EntityAddress, agent_id: str) -> str:
        """Find a just-created flow's id by listing its project's agents."""
        project_id = self._map.bound_id(EntityAddress(address.project))
        for agent in await self.gateway.list_agents(project_id):
            if agent.id != agent_id:
                continue
            for flow in agent.flows:
                if flow.idn == address.slug and flow.id:
                    logger.debug("Resolved id of flow %s by listing agents", address)
                    return flow.id
        raise GatewayError(f"Flow {address.slug} was created but its id could not be resolved")

    async def _create_skill(self, entity: LocalEntity, result: PushResult) -> None:
        name = str(entity.address)
        folder = self.layout.entity_dir(entity.address)
        try:
            script = require_single_script(folder)
        except SkillFolderError as e:
            self._fail(result, name, "validate skill", e)
            return

        flow_id = self._parent_id(entity, result)
        if not flow_id:
            return
        try:
            metadata = read_metadata(entity.metadata_path, SkillMetadata)
            assert self._semaphore is not None
            async with self._semaphore:
                remote_id = await self.gateway.create_skill(flow_id, metadata, script.content)
            if not remote_id:
                raise GatewayError("Create skill returned no id")
        except (GatewayError, MetadataError) as e:
            self._fail(result, name, "create skill", e)
            return

        self._bind(entity, metadata, remote_id, result)
        self._record(script.path, script.content)
        self._touched.add(entity.address.parent)

    async def _create_flow_fields(
        self, flow_address: EntityAddress, flow_id: str, result: PushResult
    ) -> None:
        """Create events and state fields of a bound flow that have no id yet."""
        path = self.layout.metadata_path(flow_address)
        if not path.is_file():
            return
        try:
            flow = read_metadata(path, FlowMetadata)
        except MetadataError as e:
            logger.warning("Skipping events/states of %s: %s", flow_address, e)
            return

        changed = False
        for event in flow.events:
            if event.id:
                continue
            name = f"{flow_address}#{event.idn}"
            try:
                event_id = await self.gateway.create_event(flow_id, event)
                if not event_id:
                    raise GatewayError("Create event returned no id")
            except GatewayError as e:
                self._fail(result, name, "create event", e)
                continue
            event.id = event_id
            result.created.append(CreatedEntity("event", name, event_id))
            changed = True

        for state in flow.state_fields:
            if state.id:
                continue
            name = f"{flow_address}#{state.idn}"
            try:
                state_id = await self.gateway.create_state(flow_id, state)
                if not state_id:
                    raise GatewayError("Create state returned no id")
            except GatewayError as e:
                self._fail(result, name, "create state", e)
                continue
            state.id = state_id
            result.created.append(CreatedEntity("state", name, state_id))
            changed = True

        if changed:
            self._record(path, write_metadata(path, flow))
            self._touched.add(flow_address)
            self._metadata_changed = True

    # ------------------------------------------------------------------
    # Phase B: drift
    # ------------------------------------------------------------------

    async def _push_drift(self, result: PushResult) -> None:
        skills = list(self._map.iter_skills())
        await asyncio.gather(
            *(self._push_skill(address, node, result) for address, node in skills if node.id)
        )

    async def _push_skill(self, address: EntityAddress, node: SkillNode, result: PushResult) -> None:
        name = str(address)
        metadata_path = self.layout.metadata_path(address)
        try:
            script = require_single_script(self.layout.entity_dir(address))
            metadata_text = read_metadata_text(metadata_path)
        except (SkillFolderError, MetadataError) as e:
            self._fail(result, name, "validate skill", e)
            return

        script_key = self.layout.key(script.path)
        script_digest = compute_digest(script.content)

        script_changed = self._entries.get(script_key) != script_digest
        metadata_changed = metadata_text is not None and self._entries.get(
            self.layout.key(metadata_path)
        ) != compute_digest(metadata_text)
        if not script_changed and not metadata_changed:
            return

        try:
            if metadata_text is None:
                metadata = SkillMetadata(
                    idn=address.slug, title=node.title, runner_type=node.runner_type
                )
            else:
                metadata = parse_metadata(metadata_path, metadata_text, SkillMetadata)
            assert self._semaphore is not None
            async with self._semaphore:
                await self.gateway.update_skill(node.id, metadata, script.content)
        except (GatewayError, MetadataError) as e:
            self._fail(result, name, "update skill", e)
            return

        self._record(script.path, script.content)
        if metadata_text is not None:
            self._record(metadata_path, metadata_text)
        if metadata_changed:
            node.title = metadata.title
            node.runner_type = metadata.runner_type
            self._metadata_changed = True
        result.updated.append(address)
        self._touched.add(address.parent)
        logger.info(
            "Updated skill %s (%s)", address, "script" if script_changed else "metadata only"
        )

    # ------------------------------------------------------------------
    # Phase C: customer attributes
    # ------------------------------------------------------------------

    async def _push_attributes(self, result: PushResult) -> None:
        path = self.layout.attributes_path
        name = self.layout.key(path)
        try:
            text = read_metadata_text(path)
        except MetadataError as e:
            self._fail(result, name, "validate attributes", e)
            return
        if text is None or self._entries.get(name) == compute_digest(text):
            return

        try:
            local = parse_attributes(path, text)
            remote = await self.gateway.list_customer_attributes()
        except (GatewayError, MetadataError) as e:
            self._fail(result, name, "update attributes", e)
            return

        changes = diff_attributes(local, remote)
        for idn in changes.unknown:
            logger.warning("Attribute %s is not on the platform; skipping it", idn)

        ok = True
        for attribute in changes.changed:
            try:
                await self.gateway.update_customer_attribute(attribute)
            except GatewayError as e:
                self._fail(result, f"attribute {attribute.idn}", "update attribute", e)
                ok = False
                continue
            result.attributes_updated.append(attribute.idn)
            logger.info("Updated attribute %s", attribute.idn)

        if ok:
            self._record(path, text)

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def _publish(self, result: PushResult) -> None:
        for flow_address in sorted(self._touched, key=str):
            flow_id = self._map.bound_id(flow_address)
            if not flow_id:
                continue
            try:
                await self.gateway.publish_flow(flow_id)
            except GatewayError as e:
                logger.error("Publish %s failed: %s", flow_address, e.message)
                result.published.append(
                    PublishOutcome(flow_address, ok=False, message=e.message, reasons=e.reasons)
                )
                continue
            result.published.append(PublishOutcome(flow_address, ok=True))
