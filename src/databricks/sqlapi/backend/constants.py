"""
Constants for the Statement Execution API.
"""

from enum import Enum


class ResultFormat(Enum):
    """Enum for result format values."""

    JSON_ARRAY = "JSON_ARRAY"
    ARROW_STREAM = "ARROW_STREAM"
    CSV = "CSV"


class ResultDisposition(Enum):
    """Enum for result disposition values."""

    EXTERNAL_LINKS = "EXTERNAL_LINKS"
    INLINE = "INLINE"


class ResultCompression(Enum):
    """Enum for result compression values."""

    LZ4_FRAME = "LZ4_FRAME"
    NONE = None


class WaitTimeout(Enum):
    """Enum for wait timeout values."""

    ASYNC = "0s"
    SYNC = "10s"


class OnWaitTimeout(Enum):
    """What the server does with a statement still running when wait_timeout elapses."""

    CONTINUE = "CONTINUE"
    CANCEL = "CANCEL"


class RowFormat(Enum):
    """Shape of the rows produced by fetch_row and fetch_all."""

    JSON_ARRAY = "JSON_ARRAY"
    JSON_OBJECT = "JSON_OBJECT"
