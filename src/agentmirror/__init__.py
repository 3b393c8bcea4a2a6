"""
agentmirror - mirror a hosted agent platform's configuration tree locally.

Pulls projects, agents, flows and skills into a local file tree, reports
local drift, and pushes local edits (including locally authored entities)
back to the platform.
"""

__version__ = "0.4.0"

# Re-export core models for convenience
from agentmirror.core.config.models import CustomerConfig, MirrorConfig
from agentmirror.core.tree.models import EntityAddress, ProjectMap, RunnerKind

__all__ = [
    "CustomerConfig",
    "EntityAddress",
    "MirrorConfig",
    "ProjectMap",
    "RunnerKind",
    "__version__",
]
