"""
Status reporter: read-only drift report.

Walks the same files pull writes and classifies each against the ledger:

    M  digest differs from the ledger, or the file has no ledger entry
    D  file tracked by the map, or attributes.yaml once pulled, is missing
    A  local-only entity (metadata.yaml with an empty id, absent from the map)

Nothing is written.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agentmirror.core.ledger.store import LedgerStore
from agentmirror.core.skills.files import script_file_name, script_paths
from agentmirror.core.sync.models import FileState, StatusEntry, StatusReport
from agentmirror.core.sync.scan import scan_unmapped
from agentmirror.core.tree.layout import TreeLayout
from agentmirror.core.tree.models import EntityKind
from agentmirror.core.tree.store import MapStore

logger = logging.getLogger(__name__)


class StatusReporter:
    """
    Example:
        >>> report = StatusReporter(layout).run()
        >>> for entry in report.entries:
        ...     print(entry)
        >>> print(report.summary())
    """

    def __init__(self, layout: TreeLayout) -> None:
        self.layout = layout

    def run(self) -> StatusReport:
        """
        Raises:
            MapStoreError: No map yet (never pulled) or the map is malformed
            LedgerError: The ledger is malformed
        """
        project_map = MapStore(self.layout).load()
        ledger = LedgerStore(self.layout)
        entries = ledger.load()
        report = StatusReport(customer_idn=self.layout.customer_idn)

        def check(path: Path) -> None:
            key = ledger.key(path)
            digest = ledger.digest_file(path)
            if digest is None:
                report.entries.append(StatusEntry(FileState.DELETED, key))
            elif entries.get(key) != digest:
                report.entries.append(StatusEntry(FileState.MODIFIED, key))

        for address in project_map.iter_addresses():
            check(self.layout.metadata_path(address))
            if address.kind is not EntityKind.SKILL:
                continue

            folder = self.layout.entity_dir(address)
            scripts = script_paths(folder)
            if scripts:
                for path in scripts:
                    check(path)
            else:
                node = project_map.skill(address)
                assert node is not None
                check(folder / script_file_name(address.slug, node.runner_type))

        check(self.layout.projection_path)
        attributes = self.layout.attributes_path
        if attributes.exists() or ledger.key(attributes) in entries:
            check(attributes)

        for entity in scan_unmapped(self.layout, project_map):
            if entity.is_orphan:
                report.orphans.append(entity.address)
                continue
            report.entries.append(
                StatusEntry(FileState.ADDED, ledger.key(self.layout.entity_dir(entity.address)))
            )

        logger.debug("Status %s: %d change(s)", self.layout.customer_idn, report.changed)
        return report
