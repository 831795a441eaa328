import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, Optional, TYPE_CHECKING

from databricks.sqlapi.backend.models import (
    ChunkInfo,
    ExternalLink,
    ResultData,
    StatementResult,
)
from databricks.sqlapi.result_stream import ResultStream
from databricks.sqlapi.stream import fetch_stream
from databricks.sqlapi.utils import AbortSignal

if TYPE_CHECKING:
    from databricks.sqlapi.backend.client import StatementExecutionClient

logger = logging.getLogger(__name__)


@dataclass
class MergeExternalLinksResult:
    """
    Location of a merged result uploaded by the caller.

    Attributes:
        external_link (str): URL the merged result can be downloaded from
        byte_count (int): Size of the uploaded object in bytes
        expiration (str): When ``external_link`` stops being valid (ISO 8601)
    """

    external_link: str
    byte_count: int
    expiration: str


UploadCallback = Callable[[ResultStream], MergeExternalLinksResult]


def merge_external_links(
    result: StatementResult,
    client: "StatementExecutionClient",
    *,
    upload: UploadCallback,
    force_merge: bool = False,
    signal: Optional[AbortSignal] = None,
) -> StatementResult:
    """
    Merge the external links of a result into a single object.

    The merged stream is handed to ``upload``, which stores it wherever the caller
    likes and reports where. A new StatementResult pointing at that single link is
    returned; ``result`` itself is left untouched.

    Results without external links, and results with a single link (unless
    ``force_merge`` is set), are returned as they are and ``upload`` is not called.
    """

    if result.result is None or not result.result.has_external_links:
        return result

    links = result.result.external_links or []
    manifest = result.manifest
    if (
        not force_merge
        and len(links) == 1
        and (manifest is None or manifest.total_chunk_count <= 1)
    ):
        logger.debug(
            "Statement %s already has a single external link", result.statement_id
        )
        return result

    stream = fetch_stream(result, client, force_merge=True, signal=signal)
    try:
        uploaded = upload(stream)
    finally:
        stream.close()

    assert manifest is not None
    total_row_count = manifest.total_row_count or 0
    logger.debug(
        "Merged result of statement %s uploaded (%d bytes)",
        result.statement_id,
        uploaded.byte_count,
    )

    return StatementResult(
        statement_id=result.statement_id,
        status=result.status,
        manifest=dataclasses.replace(
            manifest,
            total_chunk_count=1,
            total_byte_count=uploaded.byte_count,
            chunks=[
                ChunkInfo(
                    chunk_index=0,
                    row_offset=0,
                    row_count=total_row_count,
                    byte_count=uploaded.byte_count,
                )
            ],
            # the merged object is written uncompressed
            result_compression=None,
        ),
        result=ResultData(
            external_links=[
                ExternalLink(
                    external_link=uploaded.external_link,
                    expiration=uploaded.expiration,
                    chunk_index=0,
                    byte_count=uploaded.byte_count,
                    row_count=total_row_count,
                    row_offset=0,
                )
            ]
        ),
    )
