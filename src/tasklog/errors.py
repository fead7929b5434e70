from __future__ import annotations


class TasklogError(Exception):
    """Base class for every error raised by the task log core."""


class NotFoundError(TasklogError, LookupError):
    pass


class CycleError(TasklogError, ValueError):
    pass


class InvalidTransitionError(TasklogError, ValueError):
    pass


class CorruptionError(TasklogError, ValueError):
    """The event log holds a record that cannot be trusted."""


class LockBusyError(TasklogError):
    """Another process holds the store lock; retry later."""

    def __init__(self, message: str = "lock busy, retry") -> None:
        super().__init__(message)


class NoStoreError(TasklogError, FileNotFoundError):
    def __init__(self, message: str = "no .tl directory found (run tl init)") -> None:
        super().__init__(message)


class StoreExistsError(TasklogError, FileExistsError):
    pass
