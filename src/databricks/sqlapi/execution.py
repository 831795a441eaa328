import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union, TYPE_CHECKING

from databricks.sqlapi.backend.models import (
    ExecuteStatementRequest,
    QueryMetrics,
    StatementParameter,
    StatementResult,
)
from databricks.sqlapi.backend.types import StatementState
from databricks.sqlapi.exc import (
    AbortError,
    ServerOperationError,
    StatementCancelledError,
)
from databricks.sqlapi.utils import AbortSignal, throw_if_aborted

if TYPE_CHECKING:
    from databricks.sqlapi.backend.client import StatementExecutionClient

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.5

ProgressCallback = Callable[[StatementResult, Optional[QueryMetrics]], Any]


def _wire_value(value):
    return value.value if isinstance(value, Enum) else value


def _report_progress(
    client: "StatementExecutionClient",
    result: StatementResult,
    on_progress: Optional[ProgressCallback],
    enable_metrics: bool,
    signal: Optional[AbortSignal],
):
    if on_progress is None:
        return

    metrics = None
    if enable_metrics:
        try:
            metrics = client.get_query_metrics(result.statement_id, signal=signal)
        except AbortError:
            raise
        except Exception as e:
            logger.warning(
                "Query metrics unavailable for statement %s: %s",
                result.statement_id,
                e,
            )
    on_progress(result, metrics)


def _cancel_quietly(client: "StatementExecutionClient", statement_id: str):
    logger.debug("Cancelling statement %s after abort", statement_id)
    try:
        client.cancel_statement(statement_id)
    except Exception as e:
        logger.warning("Failed to cancel statement %s: %s", statement_id, e)


def _raise_for_terminal_state(result: StatementResult):
    state = result.status.state
    if state == StatementState.SUCCEEDED:
        return
    if state == StatementState.CANCELED:
        raise StatementCancelledError(result.statement_id)

    error = result.status.error
    raise ServerOperationError(
        (error.message if error and error.message else None)
        or "Statement execution failed",
        {"sql-state": result.status.sql_state, "state": state.value},
        code=error.error_code if error else None,
        statement_id=result.statement_id,
    )


def execute_statement(
    query: str,
    client: "StatementExecutionClient",
    *,
    warehouse_id: Optional[str] = None,
    byte_limit: Optional[int] = None,
    catalog: Optional[str] = None,
    schema: Optional[str] = None,
    disposition: Optional[Union[str, Enum]] = None,
    format: Optional[Union[str, Enum]] = None,
    on_wait_timeout: Optional[Union[str, Enum]] = None,
    wait_timeout: Optional[Union[str, Enum]] = None,
    row_limit: Optional[int] = None,
    parameters: Optional[List[Union[StatementParameter, Dict[str, Any]]]] = None,
    on_progress: Optional[ProgressCallback] = None,
    enable_metrics: bool = False,
    poll_interval: float = POLL_INTERVAL_SECONDS,
    signal: Optional[AbortSignal] = None,
) -> StatementResult:
    """
    Execute a SQL statement and wait until it reaches a terminal state.

    The statement is submitted once and then polled every ``poll_interval`` seconds.
    ``on_progress(result, metrics)`` is called once per poll iteration while the
    statement runs and once more after it reaches a terminal state; ``metrics`` is only
    fetched when ``enable_metrics`` is set and is ``None`` if it could not be retrieved.

    If ``signal`` fires before a terminal state is observed, a cancel request is sent to
    the server (at most once, failures ignored) and ``AbortError`` is raised.

    Args:
        query: SQL text to execute
        client: Client of the workspace to execute on
        warehouse_id: Warehouse to execute on; defaults to the client's warehouse
        signal: Abort signal for cooperative cancellation

    Returns:
        StatementResult: The SUCCEEDED statement, with its manifest and first result chunk

    Raises:
        AbortError: If the signal fires before the statement finishes
        StatementCancelledError: If the statement was cancelled on the server
        ServerOperationError: If the statement FAILED or was CLOSED
        RequestError: If a request fails
    """

    throw_if_aborted(signal)

    warehouse_id = warehouse_id or client.warehouse_id
    if not warehouse_id:
        raise ValueError(
            "warehouse_id is required when the client was created without a warehouse http_path"
        )

    request = ExecuteStatementRequest(
        warehouse_id=warehouse_id,
        statement=query,
        byte_limit=byte_limit,
        catalog=catalog,
        schema=schema,
        disposition=_wire_value(disposition),
        format=_wire_value(format),
        on_wait_timeout=_wire_value(on_wait_timeout),
        wait_timeout=_wire_value(wait_timeout),
        row_limit=row_limit,
        parameters=[StatementParameter.from_value(p) for p in parameters]
        if parameters
        else None,
    )

    result = client.post_statement(request, signal=signal)
    statement_id = result.statement_id

    try:
        throw_if_aborted(signal, statement_id)
        while not result.status.state.is_terminal:
            throw_if_aborted(signal, statement_id)
            _report_progress(client, result, on_progress, enable_metrics, signal)

            logger.debug(
                "Statement %s is %s, polling again in %ss",
                statement_id,
                result.status.state.value,
                poll_interval,
            )
            if signal is not None:
                if signal.wait(poll_interval):
                    raise AbortError(statement_id=statement_id)
            else:
                time.sleep(poll_interval)

            result = client.get_statement(statement_id, signal=signal)
            throw_if_aborted(signal, statement_id)
    except AbortError as e:
        if not result.status.state.is_terminal:
            _cancel_quietly(client, statement_id)
        if e.statement_id is None:
            raise AbortError(statement_id=statement_id) from e
        raise

    logger.debug(
        "Statement %s reached terminal state %s",
        statement_id,
        result.status.state.value,
    )
    _report_progress(client, result, on_progress, enable_metrics, signal)
    _raise_for_terminal_state(result)
    return result
