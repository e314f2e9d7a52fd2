"""Data models for psm."""

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class MappingRecord:
    """Header of one memory mapping in an smaps report."""

    inode: int
    name: str  # path or pseudo-name like '[heap]'; may be empty

    @property
    def is_anon(self) -> bool:
        """True when the mapping has no backing file."""
        return self.inode == 0


@dataclass(slots=True, frozen=True)
class ProcessMemoryRecord:
    """Immutable memory measurement of a single process, in kB."""

    pid: int
    name: str
    pss: float  # includes the per-mapping truncation adjustment
    private: int
    shared: int
    heap: int
    swapped: int


@dataclass(slots=True)
class CommandMemoryAggregate:
    """Memory totals for all processes sharing a command name, in kB."""

    name: str
    pids: list[int] = field(default_factory=list)
    pss: float = 0.0
    private: int = 0
    shared: int = 0
    heap: int = 0
    swapped: int = 0

    @classmethod
    def from_record(cls, record: ProcessMemoryRecord) -> "CommandMemoryAggregate":
        """Start a new aggregate from its first process."""
        aggregate = cls(name=record.name)
        aggregate.merge(record)
        return aggregate

    def merge(self, record: ProcessMemoryRecord) -> None:
        """Add a process's counters to this aggregate."""
        if record.name != self.name:
            raise ValueError(f"cannot merge {record.name!r} into {self.name!r}")
        self.pids.append(record.pid)
        self.pss += record.pss
        self.private += record.private
        self.shared += record.shared
        self.heap += record.heap
        self.swapped += record.swapped


@dataclass(slots=True, frozen=True)
class MemoryReport:
    """Sorted result of one scan, handed to the presentation layer."""

    commands: list[CommandMemoryAggregate]
    total_pss: float
    total_swapped: int
    include_heap: bool = False
    errors: int = 0
