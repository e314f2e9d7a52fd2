"""psm - command line entry point and report viewers."""

import argparse
import cProfile
import os
import re
import sys
import tracemalloc

import structlog
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from psm.config import ScanConfig, SharedPolicy, regex_filter
from psm.errors import EnumerationError
from psm.log import configure_logging
from psm.models import CommandMemoryAggregate, MemoryReport
from psm.report import truncate_name
from psm.scanner import MemoryScanner

log = structlog.get_logger()


def to_mb(kb: float) -> float:
    """Convert kB to MB."""
    return kb / 1024.0


def format_report(report: MemoryReport) -> str:
    """Render a report as the classic plain-text table."""
    heap_header = f"{'HEAP':>10s}" if report.include_heap else ""
    lines = [f"{'MB RAM':>10s}{'PRIVATE':>10s}{'SWAPPED':>10s}{heap_header}\tPROCESS (COUNT)"]
    for cmd in report.commands:
        swap = f"{to_mb(cmd.swapped):10.1f}" if cmd.swapped > 0 else f"{'':10s}"
        heap = f"{to_mb(cmd.heap):10.1f}" if report.include_heap else ""
        lines.append(
            f"{to_mb(cmd.pss):10.1f}{to_mb(cmd.private):10.1f}{swap}{heap}"
            f"\t{truncate_name(cmd.name)} ({len(cmd.pids)})"
        )
    heap_pad = f"{'':10s}" if report.include_heap else ""
    lines.append(
        f"#{to_mb(report.total_pss):9.1f}{to_mb(report.total_swapped):20.1f}{heap_pad}"
        "\tTOTAL USED BY PROCESSES"
    )
    return "\n".join(lines)


class ReportTable(Container):
    """Container for the aggregated memory table."""

    DEFAULT_CSS = """
    ReportTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, report: MemoryReport, *args, **kwargs) -> None:
        """Initialize ReportTable."""
        super().__init__(*args, **kwargs)
        self._report = report
        self._descending = False

    @property
    def descending(self) -> bool:
        """Whether the largest consumers are listed first."""
        return self._descending

    def toggle_order(self) -> bool:
        """Flip the sort direction and redraw. Returns the new direction."""
        self._descending = not self._descending
        self._fill(self.query_one("#report-table", DataTable))
        return self._descending

    def compose(self) -> ComposeResult:
        """Compose the report table."""
        yield DataTable(id="report-table")

    def on_mount(self) -> None:
        """Add columns and rows once mounted."""
        table = self.query_one("#report-table", DataTable)
        table.cursor_type = "row"

        table.add_column("MB RAM", key="pss", width=10)
        table.add_column("PRIVATE", key="private", width=10)
        table.add_column("SHARED", key="shared", width=10)
        table.add_column("SWAPPED", key="swapped", width=10)
        if self._report.include_heap:
            table.add_column("HEAP", key="heap", width=10)
        table.add_column("PROCESS (COUNT)", key="name")
        self._fill(table)

    def ordered_commands(self) -> list[CommandMemoryAggregate]:
        """Commands in the current display order."""
        commands = self._report.commands
        return list(reversed(commands)) if self._descending else list(commands)

    def _fill(self, table: DataTable) -> None:
        """Replace all rows with the report contents."""
        table.clear()
        for cmd in self.ordered_commands():
            row = [
                f"{to_mb(cmd.pss):.1f}",
                f"{to_mb(cmd.private):.1f}",
                f"{to_mb(cmd.shared):.1f}",
                f"{to_mb(cmd.swapped):.1f}" if cmd.swapped else "",
            ]
            if self._report.include_heap:
                row.append(f"{to_mb(cmd.heap):.1f}")
            row.append(f"{truncate_name(cmd.name)} ({len(cmd.pids)})")
            table.add_row(*row, key=cmd.name)


class PsmApp(App):
    """Interactive viewer for a single memory report."""

    TITLE = "psm"
    SUB_TITLE = "Per-program RAM and swap"

    CSS = """
    Screen {
        layout: vertical;
    }

    #totals {
        dock: top;
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "sort", "Sort"),
    ]

    def __init__(self, report: MemoryReport) -> None:
        """Initialize the PsmApp."""
        super().__init__()
        self._report = report

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Static(self._totals_text(), id="totals")
        yield ReportTable(self._report)
        yield Footer()

    def _totals_text(self) -> str:
        """Summary line shown above the table."""
        report = self._report
        text = (
            f"Total: {to_mb(report.total_pss):.1f} MB RAM, "
            f"{to_mb(report.total_swapped):.1f} MB swap, "
            f"{len(report.commands)} programs"
        )
        if report.errors:
            text += f" ({report.errors} processes unreadable)"
        return text

    def action_sort(self) -> None:
        """Toggle between ascending and descending order."""
        descending = self.query_one(ReportTable).toggle_order()
        self.notify("Sort: largest first" if descending else "Sort: smallest first")

    def action_quit(self) -> None:
        """Handle quit action."""
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    """Command line options for psm."""
    parser = argparse.ArgumentParser(
        prog="psm",
        description="Simple, accurate RAM and swap reporting.",
    )
    parser.add_argument("-f", "--filter", metavar="REGEX",
                        help="only report programs whose name matches REGEX")
    parser.add_argument("--heap", action="store_true",
                        help="show heap usage as its own column")
    parser.add_argument("--shared-derived", action="store_true",
                        help="compute shared memory as Pss minus private")
    parser.add_argument("-j", "--workers", type=int, default=None,
                        help="number of worker threads (default: CPU count)")
    parser.add_argument("--timeout", type=float, default=None, metavar="SECONDS",
                        help="give up on processes still unread after this long")
    parser.add_argument("--tui", action="store_true",
                        help="browse the report interactively")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log debug diagnostics to stderr")
    parser.add_argument("--cpuprofile", metavar="FILE",
                        help="write a cProfile profile to FILE")
    parser.add_argument("--memprofile", metavar="FILE",
                        help="write a tracemalloc snapshot to FILE")
    return parser


def config_from_args(args: argparse.Namespace) -> ScanConfig:
    """Translate parsed flags into a ScanConfig."""
    return ScanConfig(
        name_filter=regex_filter(args.filter) if args.filter else None,
        include_heap=args.heap,
        shared_policy=SharedPolicy.DERIVED if args.shared_derived else SharedPolicy.DIRECT,
        workers=args.workers,
        timeout=args.timeout,
    )


def main(argv: list[str] | None = None) -> int:
    """Entry point for psm."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = config_from_args(args)
    except re.error as exc:
        parser.error(f"bad --filter: {exc}")

    # reading other users' smaps requires root
    if os.geteuid() != 0:
        print("FATAL: root required.")
        return 1

    profiler = cProfile.Profile() if args.cpuprofile else None
    if profiler is not None:
        profiler.enable()
    if args.memprofile:
        tracemalloc.start()

    try:
        report = MemoryScanner(config).scan()
    except EnumerationError as exc:
        log.error("pid_list_failed", error=str(exc))
        return 1
    finally:
        if profiler is not None:
            profiler.disable()
            profiler.dump_stats(args.cpuprofile)
        if args.memprofile:
            tracemalloc.take_snapshot().dump(args.memprofile)
            tracemalloc.stop()

    if args.tui:
        PsmApp(report).run()
    else:
        print(format_report(report))
    return 0


if __name__ == "__main__":
    sys.exit(main())
