import io
import itertools
import logging
from typing import Any, Callable, Iterable, Iterator, List, Optional, Union, TYPE_CHECKING

import ijson

from databricks.sqlapi.backend.constants import ResultFormat, RowFormat
from databricks.sqlapi.backend.models import StatementResult
from databricks.sqlapi.conversion import Row, RowMapper, create_row_mapper
from databricks.sqlapi.exc import AbortError, UnsupportedFormatError, ValueFormatError
from databricks.sqlapi.stream import fetch_stream
from databricks.sqlapi.utils import (
    AbortSignal,
    throw_if_aborted,
    validate_succeeded_result,
)

if TYPE_CHECKING:
    from databricks.sqlapi.backend.client import StatementExecutionClient

logger = logging.getLogger(__name__)


def _iter_inline_rows(
    result: StatementResult,
    client: "StatementExecutionClient",
    signal: Optional[AbortSignal],
) -> Iterator[List[Any]]:
    statement_id = result.statement_id
    manifest = result.manifest
    assert manifest is not None

    for row in (result.result.data if result.result else None) or []:
        throw_if_aborted(signal, statement_id)
        yield row

    total_chunk_count = manifest.total_chunk_count
    if total_chunk_count > 1:
        logger.debug(
            "Fetching %d additional inline chunk(s) for statement %s",
            total_chunk_count - 1,
            statement_id,
        )

    for chunk_index in range(1, total_chunk_count):
        throw_if_aborted(signal, statement_id)
        chunk = client.get_chunk(statement_id, chunk_index, signal=signal)
        if chunk.external_links is not None:
            raise UnsupportedFormatError(
                "fetch_row only supports INLINE results. Chunk {} contains external_links.".format(
                    chunk_index
                ),
                statement_id=statement_id,
            )
        for row in chunk.data or []:
            throw_if_aborted(signal, statement_id)
            yield row


def _iter_streamed_rows(
    result: StatementResult,
    client: "StatementExecutionClient",
    signal: Optional[AbortSignal],
) -> Iterator[List[Any]]:
    statement_id = result.statement_id
    stream = fetch_stream(result, client, signal=signal)
    reader = io.BufferedReader(stream)
    try:
        if not reader.peek(1):
            logger.debug("No result data to stream for statement %s", statement_id)
            return

        events = ijson.parse(reader, use_float=True)
        first = next(events)
        if first[1] != "start_array":
            raise ValueFormatError(
                "Expected JSON_ARRAY result to be an array, got {}".format(first[1]),
                code="INVALID_FORMAT",
                statement_id=statement_id,
            )

        for row in ijson.items(itertools.chain([first], events), "item"):
            if signal is not None and signal.aborted:
                logger.debug(
                    "Abort detected while streaming rows of statement %s", statement_id
                )
                stream.destroy(AbortError("Aborted", statement_id=statement_id))
                raise AbortError(statement_id=statement_id)
            if not isinstance(row, list):
                raise ValueFormatError(
                    "Expected JSON_ARRAY rows to be arrays",
                    code="INVALID_FORMAT",
                    statement_id=statement_id,
                )
            yield row
    except ijson.JSONError as e:
        raise ValueFormatError(
            "Malformed JSON_ARRAY result: {}".format(e),
            code="INVALID_JSON",
            statement_id=statement_id,
        ) from e
    finally:
        reader.close()


def iter_rows(
    result: StatementResult,
    client: "StatementExecutionClient",
    *,
    format: Union[RowFormat, str] = RowFormat.JSON_ARRAY,
    signal: Optional[AbortSignal] = None,
    encode_bigint: Optional[Callable[[int], Any]] = None,
    encode_timestamp: Optional[Callable[[str], Any]] = None,
) -> Iterator[Row]:
    """
    Iterate over the rows of a succeeded statement.

    Preconditions are checked when this function is called, before the first row is
    requested. See ``fetch_row`` for the supported results.
    """

    validate_succeeded_result(result)
    manifest = result.manifest
    assert manifest is not None
    statement_id = result.statement_id

    map_row = create_row_mapper(
        manifest,
        format,
        encode_bigint=encode_bigint,
        encode_timestamp=encode_timestamp,
    )

    has_external_links = result.result is not None and result.result.has_external_links
    logger.debug(
        "Fetching rows for statement %s (%s)",
        statement_id,
        "EXTERNAL_LINKS" if has_external_links else "INLINE",
    )

    if has_external_links:
        if manifest.format != ResultFormat.JSON_ARRAY.value:
            logger.error(
                "fetch_row only supports JSON_ARRAY for external_links; got %s",
                manifest.format,
            )
            raise UnsupportedFormatError(
                "fetch_row only supports JSON_ARRAY for external_links. Received: {}".format(
                    manifest.format
                ),
                statement_id=statement_id,
            )
        rows: Iterable[List[Any]] = _iter_streamed_rows(result, client, signal)
    else:
        rows = _iter_inline_rows(result, client, signal)

    return _map_rows(rows, map_row)


def _map_rows(rows: Iterable[List[Any]], map_row: RowMapper) -> Iterator[Row]:
    for row in rows:
        yield map_row(row)


def fetch_row(
    result: StatementResult,
    client: "StatementExecutionClient",
    *,
    on_each_row: Optional[Callable[[Row], Any]] = None,
    format: Union[RowFormat, str] = RowFormat.JSON_ARRAY,
    signal: Optional[AbortSignal] = None,
    encode_bigint: Optional[Callable[[int], Any]] = None,
    encode_timestamp: Optional[Callable[[str], Any]] = None,
) -> None:
    """
    Call ``on_each_row`` for every row of a succeeded statement, in result order.

    INLINE results are read from the statement payload and then from chunks
    ``1 .. total_chunk_count - 1``. EXTERNAL_LINKS results must be JSON_ARRAY; they are
    streamed and parsed incrementally, one row at a time.

    Args:
        result: A SUCCEEDED statement result
        client: Client used to fetch further chunks and external links
        on_each_row: Callback receiving each row
        format: ``JSON_ARRAY`` to receive rows as lists of strings, ``JSON_OBJECT`` to
            receive dicts with typed values
        signal: Abort signal checked before every row and every request
        encode_bigint: Hook applied to BIGINT values in ``JSON_OBJECT`` rows
        encode_timestamp: Hook applied to TIMESTAMP values in ``JSON_OBJECT`` rows

    Raises:
        InvalidStateError: If the statement did not succeed or has no manifest
        UnsupportedFormatError: For external links in a format other than JSON_ARRAY
        ValueFormatError: If a streamed row is not an array or a value is malformed
        AbortError: If the signal fires
    """

    for row in iter_rows(
        result,
        client,
        format=format,
        signal=signal,
        encode_bigint=encode_bigint,
        encode_timestamp=encode_timestamp,
    ):
        if on_each_row is not None:
            on_each_row(row)


def fetch_all(
    result: StatementResult,
    client: "StatementExecutionClient",
    *,
    format: Union[RowFormat, str] = RowFormat.JSON_ARRAY,
    signal: Optional[AbortSignal] = None,
    encode_bigint: Optional[Callable[[int], Any]] = None,
    encode_timestamp: Optional[Callable[[str], Any]] = None,
) -> List[Row]:
    """Collect every row of a succeeded statement into a list. See ``fetch_row``."""
    rows: List[Row] = []
    fetch_row(
        result,
        client,
        on_each_row=rows.append,
        format=format,
        signal=signal,
        encode_bigint=encode_bigint,
        encode_timestamp=encode_timestamp,
    )
    return rows
