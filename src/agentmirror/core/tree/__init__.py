"""
Entity tree: models, on-disk layout, metadata files and the map store.

Example:
    >>> from agentmirror.core.tree import MapStore, TreeLayout
    >>> layout = TreeLayout(Path.cwd(), "acme")
    >>> project_map = MapStore(layout).load()
    >>> for address, skill in project_map.iter_skills():
    ...     print(address.display, skill.id)
"""

from agentmirror.core.tree.attributes import (
    AttributeChanges,
    diff_attributes,
    dump_attributes,
    parse_attributes,
)
from agentmirror.core.tree.layout import METADATA_FILE, TreeLayout
from agentmirror.core.tree.metadata import (
    MetadataError,
    dump_metadata,
    read_metadata,
    write_metadata,
)
from agentmirror.core.tree.models import (
    AgentMetadata,
    AgentNode,
    CustomerAttribute,
    CustomerAttributes,
    EntityAddress,
    EntityKind,
    EventDescriptor,
    FlowMetadata,
    FlowNode,
    ModelRef,
    ProjectMap,
    ProjectMetadata,
    ProjectNode,
    RunnerKind,
    SkillMetadata,
    SkillNode,
    SkillParameter,
    StateDescriptor,
)
from agentmirror.core.tree.store import MapStore, MapStoreError

__all__ = [
    "METADATA_FILE",
    "AgentMetadata",
    "AgentNode",
    "AttributeChanges",
    "CustomerAttribute",
    "CustomerAttributes",
    "EntityAddress",
    "EntityKind",
    "EventDescriptor",
    "FlowMetadata",
    "FlowNode",
    "MapStore",
    "MapStoreError",
    "MetadataError",
    "ModelRef",
    "ProjectMap",
    "ProjectMetadata",
    "ProjectNode",
    "RunnerKind",
    "SkillMetadata",
    "SkillNode",
    "SkillParameter",
    "StateDescriptor",
    "TreeLayout",
    "diff_attributes",
    "dump_attributes",
    "dump_metadata",
    "parse_attributes",
    "read_metadata",
    "write_metadata",
]
