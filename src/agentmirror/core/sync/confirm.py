"""
Confirmation capability for pull.

Pull never reads the terminal itself. It is handed a Confirm callable that
answers a ConfirmRequest with yes/no/all/quit; the CLI passes a
TerminalConfirmer, tests pass a ScriptedConfirmer. A ConfirmGate wraps one
callable for one kind of prompt and remembers an "all" answer for the rest
of the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.prompt import Prompt

from agentmirror.core.skills.diff import content_diff
from agentmirror.core.tree.models import EntityAddress

logger = logging.getLogger(__name__)


class Choice(str, Enum):
    YES = "yes"
    NO = "no"
    ALL = "all"
    QUIT = "quit"

    @classmethod
    def parse(cls, answer: str) -> Choice:
        text = answer.strip().lower()
        for choice in cls:
            if text in (choice.value, choice.value[0]):
                return choice
        raise ValueError(f"Unrecognized answer: {answer!r}")


class ConfirmKind(str, Enum):
    OVERWRITE = "overwrite"
    DELETE = "delete"


@dataclass(frozen=True)
class ConfirmRequest:
    kind: ConfirmKind
    address: EntityAddress
    path: Path
    local_content: str = ""
    remote_content: str = ""
    remote_id: str = ""


Confirm = Callable[[ConfirmRequest], Choice]


class PullAborted(Exception):
    """The operator answered "quit"."""

    def __init__(self, address: EntityAddress) -> None:
        super().__init__(f"Pull cancelled at {address}")
        self.address = address


class ConfirmGate:
    """
    yes/no/all/quit bookkeeping for one kind of prompt within one run.

    Example:
        >>> gate = ConfirmGate(confirm, all_mode=force)
        >>> if gate.ask(request):
        ...     overwrite()
    """

    def __init__(self, confirm: Confirm, *, all_mode: bool = False) -> None:
        self._confirm = confirm
        self.all_mode = all_mode

    def ask(self, request: ConfirmRequest) -> bool:
        """
        Returns:
            True to proceed with the action, False to skip it

        Raises:
            PullAborted: On a "quit" answer
        """
        if self.all_mode:
            return True

        choice = self._confirm(request)
        logger.debug("%s %s: answered %s", request.kind.value, request.address, choice.value)

        if choice is Choice.QUIT:
            raise PullAborted(request.address)
        if choice is Choice.ALL:
            self.all_mode = True
            return True
        return choice is Choice.YES


class ScriptedConfirmer:
    """
    Confirm callable answering from a fixed script.

    Every request is recorded. Once the script runs out, `default` is used.
    """

    def __init__(self, answers: Iterable[Choice | str] = (), default: Choice = Choice.NO) -> None:
        self._answers = [a if isinstance(a, Choice) else Choice.parse(a) for a in answers]
        self.default = default
        self.requests: list[ConfirmRequest] = []

    def __call__(self, request: ConfirmRequest) -> Choice:
        self.requests.append(request)
        if self._answers:
            return self._answers.pop(0)
        return self.default


class TerminalConfirmer:
    """Interactive Confirm callable built on rich prompts."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def __call__(self, request: ConfirmRequest) -> Choice:
        if request.kind is ConfirmKind.OVERWRITE:
            self.console.print(
                f"\n[yellow]Local changes in[/yellow] [bold]{request.address}[/bold] "
                f"({request.path.name}) differ from the remote script."
            )
            for line in content_diff(request.local_content, request.remote_content):
                style = "red" if line.startswith("-") else "green"
                self.console.print(f"  {line}", style=style, markup=False, highlight=False)
            question = "Overwrite local file with remote content?"
        else:
            where = "no longer exists remotely" if request.remote_id else "is not on the platform"
            self.console.print(
                f"\n[yellow]{request.address.kind.value.capitalize()}[/yellow] "
                f"[bold]{request.address}[/bold] {where}."
            )
            question = "Delete local folder?"

        answer = Prompt.ask(
            f"{question} [y]es/[n]o/[a]ll/[q]uit",
            choices=["y", "n", "a", "q"],
            default="n",
            show_choices=False,
            console=self.console,
        )
        return Choice.parse(answer)
