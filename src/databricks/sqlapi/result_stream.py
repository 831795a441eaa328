import io
import logging
import weakref
from typing import Iterable, Iterator, Optional

from databricks.sqlapi.exc import AbortError
from databricks.sqlapi.utils import AbortSignal

logger = logging.getLogger(__name__)


class ResultStream(io.RawIOBase):
    """
    Lazy, read-only byte stream over an iterable of byte chunks.

    Nothing is pulled from the iterable until the first read, so building the stream
    performs no I/O. Errors raised while producing chunks surface from ``read()``.

    ``destroy(error)`` makes every later read raise ``error``. When a signal is given, the
    stream is destroyed with ``AbortError("Stream aborted")`` as soon as it fires; a read
    in progress finishes its current chunk and the next read raises. The signal only
    holds a weak reference to the stream, and the listener is removed once the stream
    is exhausted, closed or garbage collected.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        signal: Optional[AbortSignal] = None,
        statement_id: Optional[str] = None,
    ):
        super().__init__()
        self._chunks = chunks
        self._iterator: Optional[Iterator[bytes]] = None
        self._buffer = b""
        self._offset = 0
        self._exhausted = False
        self._error: Optional[BaseException] = None
        self._statement_id = statement_id
        self._signal = signal
        self._listener = None
        if signal is not None:
            self._listener = _abort_listener(weakref.ref(self))
            signal.add_listener(self._listener)

    @property
    def destroyed(self) -> bool:
        return self._error is not None

    def destroy(self, error: Optional[BaseException] = None):
        """Fail the stream: every later read raises ``error``."""
        if self._error is None:
            self._error = error or AbortError(
                "Stream aborted", statement_id=self._statement_id
            )
            logger.debug("Result stream destroyed: %s", self._error)

    def readable(self) -> bool:
        return True

    def _raise_if_destroyed(self):
        if self._error is not None:
            self._release()
            raise self._error

    def readinto(self, b) -> int:
        self._raise_if_destroyed()
        if self.closed:
            raise ValueError("I/O operation on closed stream.")

        while self._offset >= len(self._buffer):
            if self._exhausted:
                return 0
            if self._iterator is None:
                self._iterator = iter(self._chunks)
            try:
                self._buffer = next(self._iterator)
            except StopIteration:
                self._buffer = b""
                self._offset = 0
                self._exhausted = True
                self._release()
                return 0
            except Exception as e:
                self.destroy(e)
                self._release()
                raise
            self._offset = 0
            self._raise_if_destroyed()

        view = memoryview(b)
        size = min(len(view), len(self._buffer) - self._offset)
        view[:size] = self._buffer[self._offset : self._offset + size]
        self._offset += size
        return size

    def _release(self):
        if self._signal is not None:
            self._signal.remove_listener(self._listener)
            self._signal = None
        iterator, self._iterator = self._iterator, None
        close = getattr(iterator, "close", None)
        if close is not None:
            close()

    def close(self):
        if not self.closed:
            self._release()
        super().close()


def _abort_listener(stream_ref: "weakref.ref[ResultStream]"):
    def on_abort():
        stream = stream_ref()
        if stream is not None:
            stream.destroy()

    return on_abort
