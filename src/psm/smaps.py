"""Parser for /proc/<pid>/smaps.

An smaps report is a sequence of mappings. Each one starts with a header line
in the /proc/<pid>/maps format, followed by detail lines:

    7fff70e93000-7fff70eb5000 rw-p 00000000 00:00 0          [stack]
    Size:                140 kB
    Rss:                  12 kB
    Pss:                  12 kB
    Shared_Clean:          0 kB
    Shared_Dirty:          0 kB
    Private_Clean:         0 kB
    Private_Dirty:        12 kB
    Swap:                  0 kB
    VmFlags: rd wr mr mw me gd ac

Only Pss, Private_*, Shared_* and Swap are accounted, all in kB.
"""

import os
from collections.abc import Iterable
from dataclasses import dataclass

from psm.config import HEAP_NAME, PAGE_SIZE, PROC_ROOT, PSS_ADJUST, SharedPolicy
from psm.errors import ProcessGoneError, ProcessReadError, SmapsParseError
from psm.models import MappingRecord

PSS = b"Pss:"
SWAP = b"Swap:"
PRIVATE = (b"Private_Clean:", b"Private_Dirty:")
SHARED = (b"Shared_Clean:", b"Shared_Dirty:")

_NO_MAPPING = MappingRecord(inode=0, name="")


@dataclass(slots=True, frozen=True)
class SmapsTotals:
    """Counters accumulated over every mapping of one process, in kB."""

    pss: float = 0.0
    private: int = 0
    shared: int = 0
    heap: int = 0
    swapped: int = 0


def split_spaces(line: bytes) -> list[bytes]:
    """Return the whitespace-delimited fields of ``line``.

    Runs of whitespace collapse and leading or trailing whitespace yields no
    empty fields, so an empty or blank line gives ``[]``.
    """
    return line.split()


def parse_mapping_header(line: bytes) -> MappingRecord:
    """Parse a maps-style header line into a MappingRecord.

    Raises:
        SmapsParseError: the line has fewer than 5 fields or a bad inode.
    """
    pieces = split_spaces(line)
    if len(pieces) < 5:
        raise SmapsParseError(f"mapping header has {len(pieces)} fields: {line!r}")
    inode = pieces[4]
    if not inode.isdigit():
        raise SmapsParseError(f"bad inode {inode!r} in mapping header: {line!r}")
    # paths may contain spaces
    name = b" ".join(pieces[5:]).decode("utf-8", "replace") if len(pieces) > 5 else ""
    return MappingRecord(inode=int(inode), name=name)


def _value(pieces: list[bytes]) -> int:
    if len(pieces) < 2 or not pieces[1].isdigit():
        raise SmapsParseError(f"bad detail line: {b' '.join(pieces)!r}")
    return int(pieces[1])


def read_smaps(
    lines: Iterable[bytes],
    track_heap: bool = True,
    shared_policy: SharedPolicy = SharedPolicy.DIRECT,
) -> SmapsTotals:
    """Accumulate the memory counters of one smaps report.

    Every Pss value gets PSS_ADJUST added, once per mapping, because the
    kernel truncates each mapping's Pss to whole kB. Heap is the unadjusted
    Pss of the '[heap]' mapping; it is private, so there is no share to
    round.

    Raises:
        SmapsParseError: on any line that is neither a header nor a detail
            line, or on a malformed value for an accounted label.
    """
    pss = 0.0
    private = shared = heap = swapped = 0
    current = _NO_MAPPING

    for line in lines:
        pieces = split_spaces(line)
        if not pieces:
            continue
        label = pieces[0]

        if not label.endswith(b":"):
            if b"-" not in label:
                raise SmapsParseError(f"unrecognized smaps line: {line!r}")
            current = parse_mapping_header(line)
            continue

        if label == PSS:
            value = _value(pieces)
            pss += value + PSS_ADJUST
            if track_heap and current.name == HEAP_NAME:
                heap += value
        elif label in PRIVATE:
            private += _value(pieces)
        elif label in SHARED:
            if shared_policy is SharedPolicy.DIRECT:
                shared += _value(pieces)
        elif label == SWAP:
            swapped += _value(pieces)

    if shared_policy is SharedPolicy.DERIVED:
        shared = max(0, round(pss - private))

    return SmapsTotals(
        pss=pss,
        private=private,
        shared=shared,
        heap=heap,
        swapped=swapped,
    )


def proc_mem(
    pid: int,
    proc_root: str = PROC_ROOT,
    track_heap: bool = True,
    shared_policy: SharedPolicy = SharedPolicy.DIRECT,
) -> SmapsTotals:
    """Read and account /proc/<pid>/smaps.

    The kernel ends the report early, without an error, when the process
    exits mid-read, so the process directory is checked again afterwards.

    Raises:
        ProcessGoneError: the process exited before or during the read.
        ProcessReadError: the report could not be opened or read.
        SmapsParseError: the report was malformed.
    """
    pid_dir = os.path.join(proc_root, str(pid))
    path = os.path.join(pid_dir, "smaps")
    try:
        with open(path, "rb", buffering=PAGE_SIZE) as fh:
            totals = read_smaps(fh, track_heap=track_heap, shared_policy=shared_policy)
    except SmapsParseError as exc:
        raise SmapsParseError(f"{path}: {exc}", pid=pid) from exc
    except (FileNotFoundError, ProcessLookupError) as exc:
        raise ProcessGoneError(f"read {path}: {exc}", pid=pid) from exc
    except OSError as exc:
        raise ProcessReadError(f"read {path}: {exc}", pid=pid) from exc

    if not os.path.isdir(pid_dir):
        raise ProcessGoneError(f"pid {pid} exited while {path} was read", pid=pid)
    return totals
