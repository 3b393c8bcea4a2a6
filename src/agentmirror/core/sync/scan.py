"""
Local tree scanning.

Walks projects/ for entity folders (directories holding a metadata.yaml) and
reports the ones whose slug is absent from the map under their parent. Pull
uses this to find entities that vanished remotely; push and status use it to
find local-only entities.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import yaml

from agentmirror.core.tree.layout import METADATA_FILE, TreeLayout
from agentmirror.core.tree.models import EntityAddress, EntityKind, ProjectMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalEntity:
    """
    An entity folder that is not bound in the map.

    remote_id is the id found in its metadata.yaml. Empty means the entity
    was authored locally and never pushed; non-empty means it is an orphan
    (it was bound once, e.g. a declined remote deletion).
    """

    address: EntityAddress
    metadata_path: Path
    remote_id: str = ""

    @property
    def kind(self) -> EntityKind:
        return self.address.kind

    @property
    def is_orphan(self) -> bool:
        return bool(self.remote_id)


def read_remote_id(path: Path) -> str:
    """The `id` field of a metadata file, or "" when absent or unreadable."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning("Cannot read %s: %s", path, e)
        return ""
    if not isinstance(data, dict):
        return ""
    value = data.get("id")
    return str(value) if value else ""


def iter_entity_folders(layout: TreeLayout) -> Iterator[EntityAddress]:
    """
    Every entity folder under projects/, parents before children.

    Only folders that hold a metadata.yaml count, and only their
    subdirectories are searched further.
    """
    if not layout.projects_dir.is_dir():
        return

    level = [
        p for p in sorted(layout.projects_dir.iterdir()) if (p / METADATA_FILE).is_file()
    ]
    depth = 1
    while level and depth <= 4:
        next_level = []
        for folder in level:
            yield layout.address_of(folder)
            if depth < 4:
                next_level.extend(
                    child
                    for child in sorted(folder.iterdir())
                    if child.is_dir() and (child / METADATA_FILE).is_file()
                )
        level = next_level
        depth += 1


def scan_unmapped(layout: TreeLayout, project_map: ProjectMap) -> list[LocalEntity]:
    """
    Entity folders absent from project_map, parents before children.

    Descendants of an unmapped folder are reported as well.
    """
    found = []
    for address in iter_entity_folders(layout):
        if project_map.contains(address):
            continue
        metadata_path = layout.metadata_path(address)
        found.append(LocalEntity(address, metadata_path, read_remote_id(metadata_path)))
    return found


def topmost(entities: list[LocalEntity]) -> list[LocalEntity]:
    """Drop entities whose parent is itself in the list."""
    addresses = {e.address for e in entities}
    return [e for e in entities if e.address.parent not in addresses]
