"""
Result models for pull, push and status runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from agentmirror.core.tree.models import EntityAddress


@dataclass
class PullResult:
    """Counts and outcomes of one customer's pull."""

    customer_idn: str
    projects: int = 0
    agents: int = 0
    flows: int = 0
    skills: int = 0
    scripts_written: int = 0
    scripts_unchanged: int = 0
    scripts_renamed: int = 0
    conflicts_kept: list[EntityAddress] = field(default_factory=list)
    invalid_skills: list[str] = field(default_factory=list)
    deleted: list[EntityAddress] = field(default_factory=list)
    kept: list[EntityAddress] = field(default_factory=list)
    attributes: int = 0
    attributes_kept: bool = False

    def summary(self) -> str:
        parts = [
            f"{self.projects} project(s)",
            f"{self.agents} agent(s)",
            f"{self.flows} flow(s)",
            f"{self.skills} skill(s)",
            f"{self.scripts_written} script(s) written",
            f"{self.scripts_unchanged} unchanged",
        ]
        if self.scripts_renamed:
            parts.append(f"{self.scripts_renamed} renamed")
        if self.conflicts_kept:
            parts.append(f"{len(self.conflicts_kept)} local change(s) kept")
        if self.deleted:
            parts.append(f"{len(self.deleted)} deleted")
        if self.kept:
            parts.append(f"{len(self.kept)} deletion(s) declined")
        if self.attributes:
            parts.append(f"{self.attributes} attribute(s)")
        if self.attributes_kept:
            parts.append("local attribute edits kept")
        return ", ".join(parts)


@dataclass
class CreatedEntity:
    kind: str
    name: str
    remote_id: str


@dataclass
class EntityFailure:
    """A per-entity failure; never aborts sibling processing."""

    name: str
    operation: str
    message: str
    reasons: list[str] = field(default_factory=list)


@dataclass
class PublishOutcome:
    flow: EntityAddress
    ok: bool
    message: str = ""
    reasons: list[str] = field(default_factory=list)


@dataclass
class PushResult:
    customer_idn: str
    created: list[CreatedEntity] = field(default_factory=list)
    updated: list[EntityAddress] = field(default_factory=list)
    failed: list[EntityFailure] = field(default_factory=list)
    orphans: list[EntityAddress] = field(default_factory=list)
    published: list[PublishOutcome] = field(default_factory=list)
    attributes_updated: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def publish_failures(self) -> list[PublishOutcome]:
        return [p for p in self.published if not p.ok]

    def summary(self) -> str:
        text = (
            f"{len(self.created)} created, {len(self.updated)} updated, "
            f"{len(self.failed)} failed"
        )
        if self.attributes_updated:
            text += f", {len(self.attributes_updated)} attribute(s) updated"
        if self.published:
            succeeded = len(self.published) - len(self.publish_failures)
            text += f"; published {succeeded}/{len(self.published)} flow(s)"
        return text


class FileState(str, Enum):
    MODIFIED = "M"
    DELETED = "D"
    ADDED = "A"


STATE_LABELS = {
    FileState.MODIFIED: "modified",
    FileState.DELETED: "deleted",
    FileState.ADDED: "added",
}


@dataclass
class StatusEntry:
    state: FileState
    path: str

    def __str__(self) -> str:
        return f"{self.state.value}  {self.path}"


@dataclass
class StatusReport:
    customer_idn: str
    entries: list[StatusEntry] = field(default_factory=list)
    orphans: list[EntityAddress] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.entries)

    @property
    def is_clean(self) -> bool:
        return not self.entries

    def by_state(self, state: FileState) -> list[StatusEntry]:
        return [e for e in self.entries if e.state is state]

    def summary(self) -> str:
        if self.is_clean:
            return "Clean."
        counts = [
            f"{len(self.by_state(state))} {label}"
            for state, label in STATE_LABELS.items()
            if self.by_state(state)
        ]
        return f"{self.changed} changed file(s): {', '.join(counts)}."
