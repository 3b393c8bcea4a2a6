"""
The customer attributes document, <customer>/attributes.yaml.

Pull writes every attribute the platform holds, hidden ones included. Push
compares each local value with the platform's and updates the ones that
differ; attributes unknown to the platform are reported and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from agentmirror.core.tree.metadata import dump_metadata, parse_metadata
from agentmirror.core.tree.models import CustomerAttribute, CustomerAttributes

logger = logging.getLogger(__name__)


def dump_attributes(attributes: list[CustomerAttribute]) -> str:
    return dump_metadata(CustomerAttributes(attributes=attributes))


def parse_attributes(path: Path, content: str) -> list[CustomerAttribute]:
    """
    Raises:
        MetadataError: If the document is not valid YAML or does not validate
    """
    return parse_metadata(path, content, CustomerAttributes).attributes


@dataclass
class AttributeChanges:
    changed: list[CustomerAttribute] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)


def diff_attributes(
    local: list[CustomerAttribute], remote: list[CustomerAttribute]
) -> AttributeChanges:
    """
    Local attributes whose value differs from the platform's.

    Each changed attribute carries the platform's id, so a stale or missing
    id in the local file does not matter.
    """
    by_idn = {a.idn: a for a in remote}
    changes = AttributeChanges()
    for attribute in local:
        current = by_idn.get(attribute.idn)
        if current is None:
            changes.unknown.append(attribute.idn)
        elif current.value != attribute.value:
            changes.changed.append(attribute.model_copy(update={"id": current.id}))
    return changes
