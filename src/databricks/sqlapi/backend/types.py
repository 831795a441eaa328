from enum import Enum


class StatementState(Enum):
    """
    Execution state of a statement, as reported by the Statement Execution API.

    Attributes:
        PENDING: Statement is queued but not yet running
        RUNNING: Statement is currently executing
        SUCCEEDED: Statement completed and its result is available
        FAILED: Statement failed; the status carries the server error
        CANCELED: Statement was canceled before completion
        CLOSED: Statement succeeded but its result was closed and can no longer be fetched
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    CLOSED = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        return self not in (StatementState.PENDING, StatementState.RUNNING)
