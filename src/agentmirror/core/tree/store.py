"""
Map store for reading/writing <state_dir>/<customer>/map.json.

The map is the authoritative join between remote ids and local slugs. It is
only ever written whole, through an atomic rename; a run that fails before
saving leaves the previous map in place to be retried next time.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from agentmirror.core.tree.layout import TreeLayout
from agentmirror.core.tree.models import ProjectMap
from agentmirror.utils.fileio import write_json_atomic

logger = logging.getLogger(__name__)


class MapStoreError(Exception):
    """Raised when the map is missing or cannot be parsed."""

    pass


def _upgrade_legacy(data: dict[str, Any]) -> dict[str, Any]:
    """
    Convert the single-project map shape to the multi-project shape.

    Legacy shape: {"projectId": ..., "projectIdn": ..., "agents": {...}}
    """
    project_idn = data.get("projectIdn") or ""
    return {
        "projects": {
            project_idn: {
                "id": data.get("projectId", ""),
                "idn": project_idn,
                "agents": data.get("agents", {}),
            }
        }
    }


class MapStore:
    """
    Store for one customer's ProjectMap.

    Example:
        >>> store = MapStore(layout)
        >>> if store.exists():
        ...     project_map = store.load()
        >>> store.save(project_map)
    """

    def __init__(self, layout: TreeLayout) -> None:
        self.layout = layout

    @property
    def path(self):
        return self.layout.map_path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> ProjectMap:
        """
        Load the map.

        Raises:
            MapStoreError: If the map does not exist or is malformed
        """
        if not self.exists():
            raise MapStoreError(
                f"No map for customer {self.layout.customer_idn}. "
                f"Run `agentmirror pull --customer {self.layout.customer_idn}` first."
            )

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise MapStoreError(f"Failed to read map {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise MapStoreError(f"Invalid map format in {self.path}")

        if "projects" not in data and "agents" in data:
            logger.info("Upgrading legacy single-project map at %s", self.path)
            data = _upgrade_legacy(data)

        try:
            return ProjectMap.model_validate(data)
        except ValidationError as e:
            raise MapStoreError(f"Invalid map format in {self.path}: {e}") from e

    def load_or_empty(self) -> ProjectMap:
        """Load the map, or an empty one when none has been written yet."""
        if not self.exists():
            return ProjectMap()
        return self.load()

    def save(self, project_map: ProjectMap) -> None:
        write_json_atomic(self.path, project_map.model_dump(mode="json"))
        logger.debug("Saved map with %d project(s) to %s", len(project_map.projects), self.path)
