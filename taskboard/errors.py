"""Exceptions raised by the store and the task engine.

Each error carries the HTTP status the API answers with, so the front ends
never need their own mapping table.
"""


class TaskboardError(Exception):
    """Base class for every error the engine reports to a caller."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(TaskboardError):
    """Input was rejected before the store was touched."""


class InvalidDate(InvalidRequest):
    pass


class NotFound(TaskboardError):
    status_code = 404


class TimerAlreadyActive(TaskboardError):
    def __init__(self, message: str = "There's already an active timer running"):
        super().__init__(message)


class TimerNotRunning(TaskboardError):
    pass


class StorageError(TaskboardError):
    """The data file could not be read, decoded or written.

    Whatever mutation was in flight is lost; callers re-issue the whole
    operation from a fresh load.
    """

    status_code = 500
