"""
PDF export pipeline: summary -> plan batches -> concurrent render -> ordered merge.
The work area is always released, whether the export succeeds, fails or times out.
"""
from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable, Optional

from jobs.dispatcher import plan_batches, run_render_tasks

from .assembler import assemble_document
from .errors import ExportError, RecordReadFailure
from .report_data import RecordKind, build_summary
from .work_area import WorkArea

logger = logging.getLogger(__name__)

PAGE_LIMIT = int(os.environ.get("REPORT_PAGE_LIMIT", "2000"))

REPORT_FILENAME = "financial-report.pdf"


def _count(store, owner_id: int, kind: RecordKind) -> int:
    try:
        return int(store.count_by_owner_and_kind(owner_id, kind))
    except RecordReadFailure:
        raise
    except Exception as e:
        raise RecordReadFailure(f"count {kind.value} failed: {e}") from e


def export_report(
    owner_id: int,
    store_factory: Callable,
    *,
    page_limit: int = PAGE_LIMIT,
    executor_kind: Optional[str] = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    temp_dir: Path | None = None,
) -> bytes:
    """
    Build the financial report PDF for one owner and return its bytes.

    store_factory must be picklable when using the process executor; it is called once
    here and once inside every chunk task. Raises ExportError subclasses on failure; no
    partial document is ever returned.
    """
    start = time.perf_counter()
    work_area = WorkArea.create(temp_dir)
    try:
        store = store_factory()
        summary = build_summary(store, owner_id)
        income_count = _count(store, owner_id, RecordKind.INCOME)
        expense_count = _count(store, owner_id, RecordKind.EXPENSE)
        batches = plan_batches(RecordKind.INCOME, income_count, page_limit) + plan_batches(
            RecordKind.EXPENSE, expense_count, page_limit
        )
        logger.info(
            "[report] export_id=%s owner=%s income=%d expense=%d batches=%d",
            work_area.export_id, owner_id, income_count, expense_count, len(batches),
        )
        fragments = run_render_tasks(
            summary,
            batches,
            owner_id,
            store_factory,
            str(work_area.path),
            executor_kind=executor_kind,
            max_workers=max_workers,
            timeout=timeout,
            on_abandoned_settled=work_area.release,
        )
        pdf_bytes = assemble_document(fragments)
        logger.info(
            "[report] export_id=%s done fragments=%d bytes=%d duration=%.2fs",
            work_area.export_id, len(fragments), len(pdf_bytes), time.perf_counter() - start,
        )
        return pdf_bytes
    except ExportError as e:
        logger.error("[report] export_id=%s failed: %s", work_area.export_id, e)
        raise
    finally:
        work_area.release()
