"""
Report render tasks. Each runs in its own worker (process by default) and takes only
picklable arguments; its single result, a Fragment, travels back through the Future.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Callable

from reporting.chunk_renderer import render_chunk
from reporting.errors import RecordReadFailure
from reporting.report_builder import render_footer, render_header
from reporting.report_data import Batch, Fragment, Summary

logger = logging.getLogger(__name__)

READ_ATTEMPTS = max(1, int(os.environ.get("REPORT_READ_ATTEMPTS", "2")))
READ_RETRY_DELAY_S = 0.2


def _read_page(store, owner_id: int, batch: Batch, attempts: int = READ_ATTEMPTS):
    """Re-reads the same window on failure, so ordering and coverage are unchanged."""
    for attempt in range(1, attempts + 1):
        try:
            return store.find_page(owner_id, batch.kind, batch.offset, batch.limit)
        except Exception as e:
            if attempt >= attempts:
                if isinstance(e, RecordReadFailure):
                    raise
                raise RecordReadFailure(
                    f"read {batch.kind.value} offset={batch.offset} failed: {e}"
                ) from e
            logger.warning(
                "[dispatch] read %s offset=%d attempt=%d/%d failed: %s",
                batch.kind.value, batch.offset, attempt, attempts, e,
            )
            time.sleep(READ_RETRY_DELAY_S * attempt)


def render_chunk_task(store_factory: Callable, owner_id: int, batch: Batch, work_dir: str) -> Fragment:
    store = store_factory()
    records = _read_page(store, owner_id, batch)
    return render_chunk(batch, records, work_dir)


def render_header_task(summary: Summary, work_dir: str) -> Fragment:
    return render_header(summary, work_dir)


def render_footer_task(work_dir: str) -> Fragment:
    return render_footer(work_dir)
