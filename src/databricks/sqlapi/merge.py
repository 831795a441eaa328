"""
Merging of result chunks into a single byte stream.

A result served through external links is split into chunks, each a complete document
in the result format. The mergers here concatenate those documents into one document
of the same format without materialising more than one chunk at a time.
"""

import io
import logging
from abc import ABC, abstractmethod
from typing import BinaryIO, Callable, Iterable, Iterator, List, Optional, Union

from pyarrow import ipc

from databricks.sqlapi.backend.constants import ResultFormat
from databricks.sqlapi.exc import UnsupportedFormatError, ValueFormatError
from databricks.sqlapi.result_stream import ResultStream
from databricks.sqlapi.utils import AbortSignal, throw_if_aborted

logger = logging.getLogger(__name__)

# Called with (url, signal); yields the (decompressed) body of the link.
LinkFetcher = Callable[[str, Optional[AbortSignal]], Iterable[bytes]]

_WHITESPACE = b" \t\r\n"
_JSON_TAIL = _WHITESPACE + b"]"


class StreamMerger(ABC):
    """Strategy that turns an ordered list of chunk URLs into one byte stream."""

    @abstractmethod
    def iter_merge(
        self,
        format: Union[ResultFormat, str],
        urls: List[str],
        signal: Optional[AbortSignal] = None,
    ) -> Iterator[bytes]:
        """Yield the merged document piece by piece."""
        pass

    def merge(
        self,
        format: Union[ResultFormat, str],
        urls: List[str],
        output: BinaryIO,
        signal: Optional[AbortSignal] = None,
    ) -> int:
        """Write the merged document to ``output`` and return the number of bytes written."""
        written = 0
        for data in self.iter_merge(format, urls, signal):
            output.write(data)
            written += len(data)
        return written


def _iter_json_array_body(pieces: Iterable[bytes]) -> Iterator[bytes]:
    """
    Yield the content of one JSON array document without its outer brackets.

    Leading whitespace is dropped. Trailing whitespace and ``]`` bytes are held back
    until more content arrives, so only the final closing bracket is removed.
    """

    started = False
    held = b""
    for piece in pieces:
        if not started:
            piece = piece.lstrip(_WHITESPACE)
            if not piece:
                continue
            if piece[:1] != b"[":
                raise ValueFormatError(
                    "Expected a JSON array in result chunk", code="INVALID_FORMAT"
                )
            piece = piece[1:]
            started = True

        data = held + piece
        body = data.rstrip(_JSON_TAIL)
        held = data[len(body) :]
        if body:
            yield body

    if not started:
        # empty body
        return

    tail = held.rstrip(_WHITESPACE)
    if not tail.endswith(b"]"):
        raise ValueFormatError(
            "Unterminated JSON array in result chunk", code="INVALID_FORMAT"
        )
    if tail[:-1]:
        yield tail[:-1]


class UrlStreamMerger(StreamMerger):
    """
    Default merger: downloads each URL in order and merges JSON_ARRAY, CSV and
    ARROW_STREAM documents.

    Args:
        fetch: Callable returning the body of a URL as an iterable of byte pieces
    """

    def __init__(self, fetch: LinkFetcher):
        self.fetch = fetch

    def iter_merge(
        self,
        format: Union[ResultFormat, str],
        urls: List[str],
        signal: Optional[AbortSignal] = None,
    ) -> Iterator[bytes]:
        try:
            result_format = ResultFormat(format)
        except ValueError:
            raise UnsupportedFormatError(
                "Unsupported result format for merging: {}".format(format)
            )

        logger.debug("Merging %d %s chunk(s)", len(urls), result_format.value)

        if result_format == ResultFormat.JSON_ARRAY:
            return self._merge_json_array(urls, signal)
        if result_format == ResultFormat.CSV:
            return self._merge_csv(urls, signal)
        return self._merge_arrow_stream(urls, signal)

    def _iter_bodies(
        self, urls: List[str], signal: Optional[AbortSignal]
    ) -> Iterator[Iterable[bytes]]:
        for url in urls:
            throw_if_aborted(signal)
            yield self.fetch(url, signal)

    def _merge_json_array(
        self, urls: List[str], signal: Optional[AbortSignal]
    ) -> Iterator[bytes]:
        yield b"["
        emitted = False
        for body in self._iter_bodies(urls, signal):
            first = True
            for content in _iter_json_array_body(body):
                if first:
                    content = content.lstrip(_WHITESPACE)
                    if not content:
                        continue
                    if emitted:
                        yield b","
                    first = False
                    emitted = True
                yield content
        yield b"]"

    def _merge_csv(
        self, urls: List[str], signal: Optional[AbortSignal]
    ) -> Iterator[bytes]:
        last_byte = b""
        for position, body in enumerate(self._iter_bodies(urls, signal)):
            skipping_header = position > 0
            needs_separator = position > 0 and last_byte not in (b"", b"\n")
            for piece in body:
                if skipping_header:
                    newline = piece.find(b"\n")
                    if newline == -1:
                        continue
                    piece = piece[newline + 1 :]
                    skipping_header = False
                if not piece:
                    continue
                if needs_separator:
                    yield b"\n"
                    needs_separator = False
                yield piece
                last_byte = piece[-1:]

    def _merge_arrow_stream(
        self, urls: List[str], signal: Optional[AbortSignal]
    ) -> Iterator[bytes]:
        sink = io.BytesIO()
        writer = None
        schema = None

        def drain() -> bytes:
            data = sink.getvalue()
            sink.seek(0)
            sink.truncate(0)
            return data

        try:
            for chunk_index, body in enumerate(self._iter_bodies(urls, signal)):
                reader = ipc.open_stream(io.BufferedReader(ResultStream(body)))
                if writer is None:
                    schema = reader.schema
                    writer = ipc.new_stream(sink, schema)
                elif not reader.schema.equals(schema):
                    raise ValueFormatError(
                        "Arrow schema of chunk {} does not match the first chunk".format(
                            chunk_index
                        ),
                        code="INVALID_FORMAT",
                    )
                for batch in reader:
                    throw_if_aborted(signal)
                    writer.write_batch(batch)
                    data = drain()
                    if data:
                        yield data
            if writer is not None:
                writer.close()
                writer = None
                data = drain()
                if data:
                    yield data
        finally:
            if writer is not None:
                writer.close()
