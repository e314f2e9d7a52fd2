"""Scan configuration for psm."""

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import psutil

# max length of /proc/<pid>/comm
COMM_MAX = 16
# from ps_mem: average error due to truncation in the kernel's Pss figures
PSS_ADJUST = 0.5
PAGE_SIZE = 4096
CMD_DISPLAY_MAX = 32
PROC_ROOT = "/proc"
HEAP_NAME = "[heap]"

NameFilter = Callable[[str], bool]


class SharedPolicy(Enum):
    """How the shared counter of a process is computed."""

    DIRECT = "direct"  # Shared_Clean + Shared_Dirty
    DERIVED = "derived"  # Pss - private


@dataclass(slots=True)
class ScanConfig:
    """Options passed into a single memory scan."""

    name_filter: NameFilter | None = None
    include_heap: bool = False
    shared_policy: SharedPolicy = SharedPolicy.DIRECT
    workers: int | None = None
    proc_root: str = PROC_ROOT
    timeout: float | None = None  # seconds for the whole scan

    @property
    def worker_count(self) -> int:
        """Number of worker threads, defaulting to the host CPU count."""
        count = self.workers if self.workers is not None else psutil.cpu_count()
        return max(1, count or 1)


def regex_filter(pattern: str) -> NameFilter:
    """Build a name filter that accepts names matching ``pattern`` anywhere."""
    compiled = re.compile(pattern)
    return lambda name: compiled.search(name) is not None
