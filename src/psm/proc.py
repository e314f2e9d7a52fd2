"""Process enumeration and name resolution from /proc."""

import os

from psm.config import COMM_MAX, PROC_ROOT
from psm.errors import EnumerationError, ProcessReadError

DELETED_SUFFIX = b" (deleted)"


def pid_list(proc_root: str = PROC_ROOT) -> list[int]:
    """Return the PIDs of every process currently listed under ``proc_root``.

    Raises:
        EnumerationError: the process table could not be listed.
    """
    try:
        with os.scandir(proc_root) as it:
            entries = list(it)
    except OSError as exc:
        raise EnumerationError(f"list {proc_root}: {exc}") from exc

    pids = []
    for entry in entries:
        if not entry.name.isdigit():
            continue
        try:
            if not entry.is_dir():
                continue
        except OSError:
            # vanished between listing and stat
            continue
        pids.append(int(entry.name))
    return pids


def proc_name(pid: int, proc_root: str = PROC_ROOT) -> str:
    """Resolve the display name of a process.

    Argument 0 of the command line is preferred, since setproctitle(3)
    changes it. When it looks like a truncated copy of the executable (the
    kernel keeps at most COMM_MAX bytes of a name) the base name of
    /proc/<pid>/exe is used instead.

    Names are compared as raw bytes and decoded for display with invalid
    UTF-8 replaced, so the result can always be printed.

    An unreadable exe link means the process is gone or is a kernel thread.
    That is not an error, and resolves to ``""``.

    Raises:
        ProcessReadError: the command line could not be read.
    """
    base_dir = os.path.join(os.fsencode(proc_root), str(pid).encode())
    try:
        exe = os.readlink(os.path.join(base_dir, b"exe"))
    except OSError:
        return ""
    if exe.endswith(DELETED_SUFFIX):
        exe = exe[: -len(DELETED_SUFFIX)]

    cmdline_path = os.path.join(base_dir, b"cmdline")
    try:
        with open(cmdline_path, "rb") as fh:
            args = fh.read().split(b"\0")
    except OSError as exc:
        raise ProcessReadError(f"read {os.fsdecode(cmdline_path)}: {exc}", pid=pid) from exc

    name = args[0]
    truncated = name[:COMM_MAX]
    base = os.path.basename(exe)
    if base.startswith(truncated) or exe.startswith(truncated):
        name = base
    return name.decode("utf-8", "replace")
