"""
Reconciliation: pull, push and status for one customer namespace.

Example:
    >>> from agentmirror.core.sync import PullReconciler, TerminalConfirmer
    >>> result = await PullReconciler(gateway, layout, TerminalConfirmer()).run()
"""

from agentmirror.core.sync.confirm import (
    Choice,
    Confirm,
    ConfirmGate,
    ConfirmKind,
    ConfirmRequest,
    PullAborted,
    ScriptedConfirmer,
    TerminalConfirmer,
)
from agentmirror.core.sync.models import (
    CreatedEntity,
    EntityFailure,
    FileState,
    PublishOutcome,
    PullResult,
    PushResult,
    StatusEntry,
    StatusReport,
)
from agentmirror.core.sync.pull import PullReconciler
from agentmirror.core.sync.push import PushReconciler
from agentmirror.core.sync.scan import LocalEntity, scan_unmapped
from agentmirror.core.sync.status import StatusReporter

__all__ = [
    "Choice",
    "Confirm",
    "ConfirmGate",
    "ConfirmKind",
    "ConfirmRequest",
    "CreatedEntity",
    "EntityFailure",
    "FileState",
    "LocalEntity",
    "PublishOutcome",
    "PullAborted",
    "PullReconciler",
    "PullResult",
    "PushReconciler",
    "PushResult",
    "ScriptedConfirmer",
    "StatusEntry",
    "StatusReport",
    "StatusReporter",
    "TerminalConfirmer",
    "scan_unmapped",
]
