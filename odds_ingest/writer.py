"""Chunked writes of consolidated odds into the current and opening sinks."""

from typing import Callable, Optional

from . import db
from .config import CHUNK_SIZE, logger


def chunk_rows(rows: list[dict], size: int = CHUNK_SIZE) -> list[list[dict]]:
    """Split rows into consecutive chunks of at most size rows.

    Examples:
        >>> [len(c) for c in chunk_rows([{}] * 1200, 500)]
        [500, 500, 200]
    """
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [rows[i:i + size] for i in range(0, len(rows), size)]


def _empty_report(sink: str) -> dict:
    return {
        "sink": sink,
        "chunks": 0,
        "inserted": 0,
        "updated": 0,
        "skipped": 0,
        "failed_rows": 0,
        "failed_chunks": [],
    }


def write_sink(
    rows: list[dict],
    sink: str,
    chunk_size: int = CHUNK_SIZE,
    upsert: Optional[Callable[[list[dict], str], dict]] = None,
) -> dict:
    """Write rows to one sink chunk by chunk, continuing past failed chunks.

    Chunks are written sequentially so a pass never races itself on the
    same keys. A failed chunk is logged with its index and size, recorded in
    the report, and the next chunk is attempted.

    Args:
        rows: Consolidated odds rows sharing one fetched_at
        sink: 'current' or 'opening'
        chunk_size: Maximum rows per write
        upsert: Chunk writer (default: db.upsert_odds_chunk)

    Returns:
        Report dict with keys: sink, chunks, inserted, updated, skipped,
        failed_rows, failed_chunks (list of {index, size, error})
    """
    if upsert is None:
        upsert = db.upsert_odds_chunk

    report = _empty_report(sink)
    chunks = chunk_rows(rows, chunk_size)
    report["chunks"] = len(chunks)

    for index, chunk in enumerate(chunks):
        try:
            counts = upsert(chunk, sink)
        except Exception as e:
            logger.error(
                f"Failed writing {sink} chunk {index} ({len(chunk)} rows, "
                f"first key {chunk[0].get('eventid')}/{chunk[0].get('oddid')}/{chunk[0].get('line')}): {e}",
                exc_info=True,
            )
            report["failed_rows"] += len(chunk)
            report["failed_chunks"].append({"index": index, "size": len(chunk), "error": str(e)})
            continue

        report["inserted"] += counts.get("inserted", 0)
        report["updated"] += counts.get("updated", 0)
        report["skipped"] += counts.get("skipped", 0)

    return report


def write_dual(
    rows: list[dict],
    chunk_size: int = CHUNK_SIZE,
    upsert: Optional[Callable[[list[dict], str], dict]] = None,
) -> dict:
    """Write the same consolidated rows to the current and opening sinks.

    Both sinks go through write_sink, so chunking and error handling are
    shared; only the conflict policy differs. Each sink is attempted even if
    the other one blew up entirely.

    Returns:
        Dict mapping 'current' and 'opening' to their write_sink reports
    """
    reports = {}
    for sink in (db.SINK_CURRENT, db.SINK_OPENING):
        try:
            reports[sink] = write_sink(rows, sink, chunk_size, upsert)
        except Exception as e:
            logger.error(f"Write to {sink} sink aborted: {e}", exc_info=True)
            report = _empty_report(sink)
            report["failed_rows"] = len(rows)
            report["failed_chunks"].append({"index": None, "size": len(rows), "error": str(e)})
            reports[sink] = report

    for sink, report in reports.items():
        logger.debug(
            f"{sink}: {report['inserted']} inserted, {report['updated']} updated, "
            f"{report['skipped']} skipped, {report['failed_rows']} failed"
        )

    return reports
