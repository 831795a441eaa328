import logging
import re
import threading
from typing import Callable, List, Optional

from databricks.sqlapi.backend.models import StatementResult
from databricks.sqlapi.backend.types import StatementState
from databricks.sqlapi.exc import AbortError, InvalidStateError

logger = logging.getLogger(__name__)

WAREHOUSE_PATH_PATTERNS = [
    re.compile(r".*/warehouses/(.+)"),
    re.compile(r".*/endpoints/(.+)"),
]


class AbortSignal:
    """
    Cooperative cancellation handle shared by every layer of a call.

    The signal wraps a ``threading.Event`` so ``abort()`` may be called from another
    thread, from a callback or from a signal handler. Long running operations check the
    signal before each suspension point and raise ``AbortError`` once it has fired.
    Listeners registered with ``add_listener`` run exactly once, on the thread that
    calls ``abort()``.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: Optional[str] = None):
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            listeners, self._listeners = self._listeners, []

        logger.debug("Abort signal fired: %s", reason)
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.warning("Abort listener failed: %s", e)

    def add_listener(self, listener: Callable[[], None]):
        """Register ``listener``; it runs immediately if the signal already fired."""
        with self._lock:
            if not self._event.is_set():
                self._listeners.append(listener)
                return
        listener()

    def remove_listener(self, listener: Callable[[], None]):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def throw_if_aborted(self, statement_id: Optional[str] = None):
        if self._event.is_set():
            raise AbortError(statement_id=statement_id)

    def wait(self, seconds: float) -> bool:
        """Block for up to ``seconds``; returns True as soon as the signal fires."""
        return self._event.wait(seconds)


def throw_if_aborted(signal: Optional[AbortSignal], statement_id: Optional[str] = None):
    if signal is not None:
        signal.throw_if_aborted(statement_id)


def extract_warehouse_id(http_path: str) -> str:
    """
    Extract the warehouse ID from the HTTP path.

    Args:
        http_path: The HTTP path from which to extract the warehouse ID,
            e.g. ``/sql/1.0/warehouses/abc123`` or ``/sql/1.0/endpoints/abc123``

    Returns:
        The extracted warehouse ID

    Raises:
        ValueError: If the warehouse ID cannot be extracted from the path
    """

    for pattern in WAREHOUSE_PATH_PATTERNS:
        match = pattern.match(http_path or "")
        if not match:
            continue
        warehouse_id = match.group(1).strip("/")
        logger.debug(
            "Extracted warehouse ID: %s from path: %s", warehouse_id, http_path
        )
        return warehouse_id

    error_message = (
        "Could not extract warehouse ID from http_path: {}. "
        "Expected format: /path/to/warehouses/{{warehouse_id}} or "
        "/path/to/endpoints/{{warehouse_id}}.".format(http_path)
    )
    logger.error(error_message)
    raise ValueError(error_message)


def validate_succeeded_result(result: StatementResult):
    """Raise InvalidStateError unless ``result`` is a succeeded statement with a manifest."""
    state = result.status.state
    if state != StatementState.SUCCEEDED:
        raise InvalidStateError(
            "Cannot fetch from non-succeeded statement: {}".format(state.value),
            statement_id=result.statement_id,
        )
    if result.manifest is None:
        raise InvalidStateError(
            "Statement result has no manifest",
            code="MISSING_MANIFEST",
            statement_id=result.statement_id,
        )
