"""Exception hierarchy for psm."""


class PsmError(Exception):
    """Base class for all psm errors."""


class EnumerationError(PsmError):
    """The process table could not be listed. Fatal for the whole scan."""


class ProcessError(PsmError):
    """A failure confined to a single process. The scan continues."""

    def __init__(self, message: str, *, pid: int = 0) -> None:
        super().__init__(message)
        self.pid = pid


class ProcessReadError(ProcessError):
    """A file under /proc/<pid>/ could not be read."""


class ProcessGoneError(ProcessError):
    """The process exited while it was being measured. Not reported."""


class SmapsParseError(ProcessError):
    """The smaps report held a line psm cannot account for."""
