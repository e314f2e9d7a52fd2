"""Concurrent memory scanning engine for psm."""

import threading
import time
from dataclasses import dataclass
from queue import Empty, Queue

import structlog

from psm.config import NameFilter, ScanConfig
from psm.errors import ProcessError, ProcessGoneError
from psm.models import CommandMemoryAggregate, MemoryReport, ProcessMemoryRecord
from psm.proc import pid_list, proc_name
from psm.report import build_report
from psm.smaps import proc_mem

log = structlog.get_logger()


@dataclass(slots=True, frozen=True)
class _Outcome:
    """What a worker reports for one PID: a record, a skip, or a failure."""

    pid: int
    record: ProcessMemoryRecord | None = None
    failed: bool = False


class MemoryScanner:
    """
    Measures every process once and aggregates the results by command name.

    PIDs are handed to a fixed pool of daemon worker threads through a queue
    sized to hold all of them. Workers report exactly one outcome per PID on a
    result queue. The calling thread is the only one that touches the
    command map: it merges outcomes as they arrive and returns once no PID is
    outstanding.
    """

    def __init__(self, config: ScanConfig | None = None) -> None:
        """
        Initialize the MemoryScanner.

        Args:
            config: Scan options. Defaults to ScanConfig().
        """
        self._config = config if config is not None else ScanConfig()

    @property
    def config(self) -> ScanConfig:
        """Get the scan configuration."""
        return self._config

    def scan(self) -> MemoryReport:
        """
        Run one full scan of the process table.

        Raises:
            EnumerationError: the process table could not be listed.
        """
        pids = pid_list(self._config.proc_root)

        work: Queue[int] = Queue(maxsize=len(pids))
        for pid in pids:
            work.put_nowait(pid)
        results: Queue[_Outcome] = Queue()

        n_workers = min(self._config.worker_count, len(pids))
        for i in range(n_workers):
            threading.Thread(
                target=self._worker,
                args=(work, results),
                daemon=True,
                name=f"MemoryScanner-{i}",
            ).start()
        log.debug("scan_started", pids=len(pids), workers=n_workers)

        aggregates, errors = self._drain(results, set(pids))
        return build_report(
            aggregates.values(),
            include_heap=self._config.include_heap,
            errors=errors,
        )

    def _worker(self, work: Queue[int], results: Queue[_Outcome]) -> None:
        """Worker loop; exits once the work queue is empty."""
        while True:
            try:
                pid = work.get_nowait()
            except Empty:
                return
            outcome = _Outcome(pid, failed=True)
            try:
                outcome = self._measure(pid)
            finally:
                # exactly one outcome per pid, or the drain never finishes
                results.put(outcome)

    def _measure(self, pid: int) -> _Outcome:
        """Resolve, filter and read one process."""
        config = self._config
        try:
            name = proc_name(pid, config.proc_root)
            if not name:
                # kernel thread, or the process already exited
                return _Outcome(pid)
            if config.name_filter is not None and not config.name_filter(name):
                return _Outcome(pid)
            totals = proc_mem(
                pid,
                config.proc_root,
                track_heap=config.include_heap,
                shared_policy=config.shared_policy,
            )
        except ProcessGoneError as exc:
            log.debug("process_gone", pid=pid, error=str(exc))
            return _Outcome(pid)
        except ProcessError as exc:
            log.warning("process_failed", pid=pid, error=str(exc))
            return _Outcome(pid, failed=True)
        except Exception:
            log.exception("process_crashed", pid=pid)
            return _Outcome(pid, failed=True)

        return _Outcome(
            pid,
            record=ProcessMemoryRecord(
                pid=pid,
                name=name,
                pss=totals.pss,
                private=totals.private,
                shared=totals.shared,
                heap=totals.heap,
                swapped=totals.swapped,
            ),
        )

    def _drain(
        self,
        results: Queue[_Outcome],
        outstanding: set[int],
    ) -> tuple[dict[str, CommandMemoryAggregate], int]:
        """Merge worker outcomes until every dispatched PID is accounted for."""
        timeout = self._config.timeout
        deadline = time.monotonic() + timeout if timeout is not None else None
        aggregates: dict[str, CommandMemoryAggregate] = {}
        errors = 0

        while outstanding:
            try:
                if deadline is None:
                    outcome = results.get()
                else:
                    outcome = results.get(timeout=max(0.0, deadline - time.monotonic()))
            except Empty:
                for pid in sorted(outstanding):
                    log.error("process_timed_out", pid=pid, timeout=timeout)
                errors += len(outstanding)
                break

            outstanding.discard(outcome.pid)
            if outcome.failed:
                errors += 1
            elif outcome.record is not None:
                merge_record(aggregates, outcome.record)

        return aggregates, errors


def merge_record(
    aggregates: dict[str, CommandMemoryAggregate],
    record: ProcessMemoryRecord,
) -> None:
    """Merge one process into the aggregate for its command name."""
    aggregate = aggregates.get(record.name)
    if aggregate is None:
        aggregates[record.name] = CommandMemoryAggregate.from_record(record)
    else:
        aggregate.merge(record)


def scan(
    name_filter: NameFilter | None = None,
    include_heap: bool = False,
    **options,
) -> MemoryReport:
    """Scan all processes and return the sorted report.

    Extra keyword arguments are passed through to ScanConfig.
    """
    config = ScanConfig(name_filter=name_filter, include_heap=include_heap, **options)
    return MemoryScanner(config).scan()
