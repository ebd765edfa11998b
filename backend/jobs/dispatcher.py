"""
Batch planning and concurrent fan-out/fan-in of report render tasks.

Every export gets its own executor (processes by default, REPORT_EXECUTOR=thread for
in-process workers). Tasks share nothing; each reports through one Future. The fan-in
waits for all of them, aborts on the first failure and never waits past the export deadline.
"""
from __future__ import annotations

import logging
import multiprocessing
import os
import threading
import time
from concurrent.futures import (
    FIRST_EXCEPTION,
    Executor,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from typing import Callable, Optional

from reporting.errors import ExportError, ExportTimeout, RenderFailure
from reporting.report_data import Batch, Fragment, RecordKind, Summary, batch_count

from .tasks import render_chunk_task, render_footer_task, render_header_task

logger = logging.getLogger(__name__)

MAX_WORKERS = max(1, int(os.environ.get("REPORT_MAX_WORKERS", "0") or 0) or (os.cpu_count() or 4))
EXECUTOR_KIND = os.environ.get("REPORT_EXECUTOR", "process").strip().lower()
EXPORT_TIMEOUT_S = float(os.environ.get("REPORT_EXPORT_TIMEOUT", "120"))


def plan_batches(kind: RecordKind, count: int, page_size: int) -> list[Batch]:
    """ceil(count / page_size) windows {offset: i * page_size, limit: page_size} covering [0, count)."""
    return [
        Batch(kind=RecordKind(kind), offset=i * page_size, limit=page_size)
        for i in range(batch_count(count, page_size))
    ]


def make_executor(task_count: int, kind: str | None = None, max_workers: int | None = None) -> Executor:
    kind = (kind or EXECUTOR_KIND).lower()
    workers = max(1, min(max_workers or MAX_WORKERS, task_count))
    if kind == "thread":
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="report-render")
    if kind == "process":
        # Workers must not inherit the server's engines, pooled connections or held locks
        return ProcessPoolExecutor(max_workers=workers, mp_context=multiprocessing.get_context("spawn"))
    raise ValueError(f"REPORT_EXECUTOR must be 'process' or 'thread', got {kind!r}")


def _describe(task: tuple[str, int]) -> str:
    role, offset = task
    return role if role in ("header", "footer") else f"{role}@{offset}"


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())


def _notify_when_settled(futures: set[Future], callback: Callable[[], object]) -> None:
    """Call callback once, after the last of futures finishes."""
    pending = [len(futures)]
    lock = threading.Lock()

    def _done(_fut: Future) -> None:
        with lock:
            pending[0] -= 1
            last = pending[0] == 0
        if last:
            callback()

    for fut in futures:
        fut.add_done_callback(_done)


def run_render_tasks(
    summary: Summary,
    batches: list[Batch],
    owner_id: int,
    store_factory: Callable,
    work_dir: str,
    *,
    executor_kind: Optional[str] = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    on_abandoned_settled: Optional[Callable[[], object]] = None,
) -> list[Fragment]:
    """
    Render header, footer and one chunk per batch concurrently and return every Fragment
    (in no particular order).

    Raises the first task error. Queued tasks are cancelled; running ones get until the
    export deadline to finish and are abandoned after that. When tasks are abandoned,
    on_abandoned_settled is called once the last of them completes, so the caller can
    finish removing anything they wrote late.
    """
    timeout = EXPORT_TIMEOUT_S if timeout is None else timeout
    deadline = time.monotonic() + timeout if timeout > 0 else None
    executor = make_executor(len(batches) + 2, executor_kind, max_workers)
    futures: dict[Future, tuple[str, int]] = {}
    abandoned: set[Future] = set()
    try:
        futures[executor.submit(render_header_task, summary, work_dir)] = ("header", 0)
        futures[executor.submit(render_footer_task, work_dir)] = ("footer", 0)
        for batch in batches:
            fut = executor.submit(render_chunk_task, store_factory, owner_id, batch, work_dir)
            futures[fut] = (batch.kind.value, batch.offset)

        done, not_done = wait(futures, timeout=_remaining(deadline), return_when=FIRST_EXCEPTION)
        failed = next((fut for fut in futures if fut in done and fut.exception() is not None), None)
        if failed is not None:
            for fut in not_done:
                fut.cancel()
            # Running siblings may finish, but not past the deadline
            _, abandoned = wait(not_done, timeout=_remaining(deadline))
            err = failed.exception()
            logger.warning("[dispatch] task %s failed: %s", _describe(futures[failed]), err)
            if isinstance(err, ExportError):
                raise err
            raise RenderFailure(f"task {_describe(futures[failed])} failed: {err}") from err
        if not_done:
            abandoned = set(not_done)
            raise ExportTimeout(
                f"{len(not_done)} of {len(futures)} render tasks unfinished after {timeout:.0f}s"
            )
        return [fut.result() for fut in futures]
    finally:
        if abandoned:
            logger.warning("[dispatch] abandoning %d running render task(s)", len(abandoned))
            if on_abandoned_settled is not None:
                _notify_when_settled(abandoned, on_abandoned_settled)
        executor.shutdown(wait=not abandoned, cancel_futures=True)
