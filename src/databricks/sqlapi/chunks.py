import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from databricks.sqlapi.backend.models import ExternalLink, StatementResult
from databricks.sqlapi.utils import AbortSignal, throw_if_aborted

if TYPE_CHECKING:
    from databricks.sqlapi.backend.client import StatementExecutionClient

logger = logging.getLogger(__name__)


def _merge_links(
    links_by_index: Dict[int, List[ExternalLink]],
    links: Optional[Iterable[ExternalLink]],
    total_chunk_count: int,
    source: str,
):
    """
    Add the links of one source (the statement payload or one chunk response).

    Links of the same source that share a chunk index are all kept, in order. An index
    already owned by an earlier source keeps that source's links.
    """

    incoming: "OrderedDict[int, List[ExternalLink]]" = OrderedDict()
    for link in links or []:
        incoming.setdefault(link.chunk_index, []).append(link)

    for chunk_index, chunk_links in incoming.items():
        if chunk_index in links_by_index:
            logger.warning(
                "Ignoring %d duplicate link(s) for chunk %d from %s",
                len(chunk_links),
                chunk_index,
                source,
            )
            continue
        if not 0 <= chunk_index < total_chunk_count:
            logger.warning(
                "Chunk index %d from %s is outside the manifest range [0, %d)",
                chunk_index,
                source,
                total_chunk_count,
            )
        links_by_index[chunk_index] = chunk_links


def resolve_chunk_links(
    result: StatementResult,
    client: "StatementExecutionClient",
    signal: Optional[AbortSignal] = None,
) -> List[ExternalLink]:
    """
    Collect the external links of every chunk of a result, ordered by chunk index.

    The statement payload may hold links for only some chunks. Every chunk index in
    ``[0, total_chunk_count)`` that is still missing is fetched in ascending order; a
    chunk response may also report links of later chunks, which are then not fetched.

    Raises:
        AbortError: If the signal fires before one of the chunk requests
        RequestError: If a chunk request fails
    """

    manifest = result.manifest
    total_chunk_count = manifest.total_chunk_count if manifest else 0
    if total_chunk_count == 0:
        return []

    statement_id = result.statement_id
    links_by_index: Dict[int, List[ExternalLink]] = {}
    _merge_links(
        links_by_index,
        result.result.external_links if result.result else None,
        total_chunk_count,
        "statement {}".format(statement_id),
    )

    for chunk_index in range(total_chunk_count):
        if chunk_index in links_by_index:
            continue

        throw_if_aborted(signal, statement_id)
        logger.debug(
            "Fetching links of chunk %d/%d for statement %s",
            chunk_index,
            total_chunk_count,
            statement_id,
        )
        chunk = client.get_chunk(statement_id, chunk_index, signal=signal)
        _merge_links(
            links_by_index,
            chunk.external_links,
            total_chunk_count,
            "chunk {}".format(chunk_index),
        )
        if chunk_index not in links_by_index:
            logger.debug("Chunk %d reported no external links", chunk_index)

    return [
        link
        for chunk_index in sorted(links_by_index)
        for link in links_by_index[chunk_index]
    ]


def resolve_chunk_urls(
    result: StatementResult,
    client: "StatementExecutionClient",
    signal: Optional[AbortSignal] = None,
) -> List[str]:
    """Return the presigned URLs of every chunk of a result, ordered by chunk index."""
    return [
        link.external_link for link in resolve_chunk_links(result, client, signal)
    ]
