import logging
from typing import Dict, Iterable, Iterator, Optional, TYPE_CHECKING

import lz4.frame

from databricks.sqlapi.backend.constants import ResultCompression
from databricks.sqlapi.backend.models import ExternalLink, StatementResult
from databricks.sqlapi.chunks import resolve_chunk_links
from databricks.sqlapi.exc import UnsupportedFormatError
from databricks.sqlapi.merge import LinkFetcher, StreamMerger, UrlStreamMerger
from databricks.sqlapi.result_stream import ResultStream
from databricks.sqlapi.utils import (
    AbortSignal,
    throw_if_aborted,
    validate_succeeded_result,
)

if TYPE_CHECKING:
    from databricks.sqlapi.backend.client import StatementExecutionClient

logger = logging.getLogger(__name__)


def decompress_lz4_frames(pieces: Iterable[bytes]) -> Iterator[bytes]:
    """
    Decompress an LZ4 frame compressed body piece by piece.

    The last file of a result is commonly punctuated by several end-of-frame markers,
    so a new decompression context is started whenever a frame ends before the input.
    """

    decompressor = lz4.frame.LZ4FrameDecompressor()
    for piece in pieces:
        while piece:
            data = decompressor.decompress(piece)
            if data:
                yield data
            if not decompressor.eof:
                break
            piece = decompressor.unused_data
            decompressor = lz4.frame.LZ4FrameDecompressor()


def _link_fetcher(
    client: "StatementExecutionClient",
    links: Iterable[ExternalLink],
    is_lz4_compressed: bool,
) -> LinkFetcher:
    headers_by_url: Dict[str, Optional[Dict[str, str]]] = {
        link.external_link: link.http_headers for link in links
    }

    def fetch(url: str, signal: Optional[AbortSignal]) -> Iterable[bytes]:
        body = client.iter_external_link(
            url, headers=headers_by_url.get(url), signal=signal
        )
        return decompress_lz4_frames(body) if is_lz4_compressed else body

    return fetch


def _iter_result(
    result: StatementResult,
    client: "StatementExecutionClient",
    force_merge: bool,
    signal: Optional[AbortSignal],
    merger: Optional[StreamMerger],
) -> Iterator[bytes]:
    manifest = result.manifest
    assert manifest is not None

    links = resolve_chunk_links(result, client, signal)
    throw_if_aborted(signal, result.statement_id)

    if not links:
        logger.debug("Statement %s has no external links", result.statement_id)
        return

    fetch = _link_fetcher(
        client,
        links,
        manifest.result_compression == ResultCompression.LZ4_FRAME.value,
    )
    urls = [link.external_link for link in links]

    if len(urls) == 1 and not force_merge:
        logger.debug("Streaming single external link of statement %s", result.statement_id)
        yield from fetch(urls[0], signal)
        return

    if merger is None:
        merger = UrlStreamMerger(fetch)
    yield from merger.iter_merge(manifest.format, urls, signal)


def fetch_stream(
    result: StatementResult,
    client: "StatementExecutionClient",
    *,
    force_merge: bool = False,
    signal: Optional[AbortSignal] = None,
    merger: Optional[StreamMerger] = None,
) -> ResultStream:
    """
    Return the whole result of a succeeded statement as one byte stream in the result
    format (JSON_ARRAY, CSV or ARROW_STREAM).

    The stream is returned immediately and is lazy: chunk links are resolved and bodies
    downloaded as the caller reads. A single link is passed through byte for byte unless
    ``force_merge`` is set; several links are merged by ``merger`` (by default a
    ``UrlStreamMerger``). Failures while producing the stream, including the signal
    firing, surface from ``read()``.

    Raises:
        InvalidStateError: If the statement did not succeed or has no manifest
        UnsupportedFormatError: If the result is INLINE rather than EXTERNAL_LINKS
    """

    validate_succeeded_result(result)
    if result.result is not None and result.result.is_inline:
        raise UnsupportedFormatError(
            "fetch_stream only supports EXTERNAL_LINKS results. Use fetch_row for INLINE results.",
            statement_id=result.statement_id,
        )

    return ResultStream(
        _iter_result(result, client, force_merge, signal, merger),
        signal=signal,
        statement_id=result.statement_id,
    )
