"""Report building for psm."""

from collections.abc import Iterable

from psm.config import CMD_DISPLAY_MAX
from psm.models import CommandMemoryAggregate, MemoryReport


def build_report(
    aggregates: Iterable[CommandMemoryAggregate],
    include_heap: bool = False,
    errors: int = 0,
) -> MemoryReport:
    """Sort aggregates ascending by Pss and total them up."""
    commands = sorted(aggregates, key=lambda c: (c.pss, c.name))
    return MemoryReport(
        commands=commands,
        total_pss=sum(c.pss for c in commands),
        total_swapped=sum(c.swapped for c in commands),
        include_heap=include_heap,
        errors=errors,
    )


def truncate_name(name: str, limit: int = CMD_DISPLAY_MAX) -> str:
    """Shorten a command name for display.

    Bracketed names such as '[kworker/0:1]' are cut just past the closing
    bracket.
    """
    if len(name) <= limit:
        return name
    if name.startswith("[") and "]" in name:
        return name[: name.index("]") + 1]
    return name[:limit]
