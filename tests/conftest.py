"""Shared fixtures for psm tests."""

import os
from pathlib import Path

import pytest
import structlog

SMAPS_SAMPLE = """\
7fff70e93000-7fff70eb5000 rw-p 00000000 00:00 0                          [stack]
Size:                140 kB
Rss:                  12 kB
Pss:                  12 kB
Shared_Clean:          0 kB
Shared_Dirty:          0 kB
Private_Clean:         0 kB
Private_Dirty:        12 kB
Referenced:           12 kB
Anonymous:            12 kB
AnonHugePages:         0 kB
Swap:                  0 kB
KernelPageSize:        4 kB
MMUPageSize:           4 kB
Locked:                0 kB
VmFlags: rd wr mr mw me gd ac 
7fff70fff000-7fff71000000 r-xp 00000000 00:00 0                          [vdso]
Size:                  4 kB
Rss:                   4 kB
Pss:                   0 kB
Shared_Clean:          4 kB
Shared_Dirty:          0 kB
Private_Clean:         0 kB
Private_Dirty:         0 kB
Referenced:            4 kB
Anonymous:             0 kB
AnonHugePages:         0 kB
Swap:                  0 kB
KernelPageSize:        4 kB
MMUPageSize:           4 kB
Locked:                0 kB
VmFlags: rd ex mr mw me de 
ffffffffff600000-ffffffffff601000 r-xp 00000000 00:00 0                  [vsyscall]
Size:                  4 kB
Rss:                   0 kB
Pss:                   0 kB
Shared_Clean:          0 kB
Shared_Dirty:          0 kB
Private_Clean:         0 kB
Private_Dirty:         0 kB
Referenced:            0 kB
Anonymous:             0 kB
AnonHugePages:         0 kB
Swap:                  0 kB
KernelPageSize:        4 kB
MMUPageSize:           4 kB
Locked:                0 kB
VmFlags: rd ex 
"""


def smaps_block(
    header: str,
    pss: int = 0,
    private_clean: int = 0,
    private_dirty: int = 0,
    shared_clean: int = 0,
    shared_dirty: int = 0,
    swap: int = 0,
) -> str:
    """Build one mapping's worth of smaps text."""
    rss = private_clean + private_dirty + shared_clean + shared_dirty
    return (
        f"{header}\n"
        f"Size:               {rss + 4:>6} kB\n"
        f"Rss:                {rss:>6} kB\n"
        f"Pss:                {pss:>6} kB\n"
        f"Shared_Clean:       {shared_clean:>6} kB\n"
        f"Shared_Dirty:       {shared_dirty:>6} kB\n"
        f"Private_Clean:      {private_clean:>6} kB\n"
        f"Private_Dirty:      {private_dirty:>6} kB\n"
        f"Swap:               {swap:>6} kB\n"
        "VmFlags: rd wr mr mw me ac \n"
    )


HEAP_HEADER = "01a2b000-01c4c000 rw-p 00000000 00:00 0                                  [heap]"
LIB_HEADER = "7f1c2a000000-7f1c2a1b5000 r-xp 00000000 fd:01 1835082                    /usr/lib/libc.so.6"
ANON_HEADER = "7f1c2b000000-7f1c2b021000 rw-p 00000000 00:00 0 "


class FakeProc:
    """Builder for a synthetic /proc tree."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def path(self) -> str:
        return str(self.root)

    def add(
        self,
        pid: int,
        exe: str | bytes | None = None,
        cmdline: list[str | bytes] | None = None,
        smaps: str | None = "",
    ) -> Path:
        """Add a process directory. ``exe=None`` mimics a kernel thread."""
        pdir = self.root / str(pid)
        pdir.mkdir()
        if exe is not None:
            os.symlink(os.fsencode(exe), os.fsencode(pdir / "exe"))
        if cmdline is not None:
            (pdir / "cmdline").write_bytes(b"".join(os.fsencode(a) + b"\0" for a in cmdline))
        if smaps is not None:
            (pdir / "smaps").write_text(smaps)
        return pdir


@pytest.fixture
def fake_proc(tmp_path) -> FakeProc:
    """An empty synthetic /proc directory."""
    root = tmp_path / "proc"
    root.mkdir()
    return FakeProc(root)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any logging configuration a test installed."""
    yield
    structlog.reset_defaults()
