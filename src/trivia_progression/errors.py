from __future__ import annotations


class ProgressionError(Exception):
    pass


class InvalidPoolError(ProgressionError, ValueError):
    pass


class InvalidEventError(ProgressionError, ValueError):
    pass


class RerollError(ProgressionError):
    pass


class CorruptSnapshotError(ProgressionError):
    pass


class WriteFailure(ProgressionError):
    pass


class ClockSkewWarning(UserWarning):
    """Observed day key is earlier than the last recorded one."""
