"""Short line diffs shown when local and remote skill scripts disagree."""

from __future__ import annotations

import difflib


def content_diff(local: str, remote: str, *, max_lines: int = 12) -> list[str]:
    """
    Changed lines between local and remote content, prefixed "-" or "+".

    Only removed and added lines are returned (no hunk headers or context),
    truncated to max_lines with a trailing "..." marker.

    Example:
        >>> content_diff("a\\nb", "a\\nc")
        ['-b', '+c']
    """
    changed = [
        line
        for line in difflib.unified_diff(
            local.strip().splitlines(),
            remote.strip().splitlines(),
            lineterm="",
            n=0,
        )
        if line and line[0] in "-+" and not line.startswith(("---", "+++"))
    ]
    if len(changed) > max_lines:
        return changed[:max_lines] + ["..."]
    return changed
