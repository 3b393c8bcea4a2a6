"""
Metadata projector: consolidated, human-readable flows.yaml.
"""

from agentmirror.core.projection.service import (
    EnumRef,
    build_projection,
    render_projection,
    write_projection,
)

__all__ = [
    "EnumRef",
    "build_projection",
    "render_projection",
    "write_projection",
]
