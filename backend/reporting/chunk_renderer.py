"""Render one batch of income or expense records into its own PDF fragment."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence

from .errors import RenderFailure
from .format_utils import format_record_line
from .report_builder import PageWriter
from .report_data import Batch, Fragment, FragmentRole, Record


def chunk_filename(batch: Batch) -> str:
    return f"{batch.kind.value}_{batch.offset}.pdf"


def chunk_heading(batch: Batch) -> str:
    return f"{batch.kind.value.upper()} Details (Batch starting at {batch.offset})"


def chunk_lines(batch: Batch, records: Sequence[Record]) -> list[str]:
    """
    One line per record, numbered by global rank within the kind (offset + index + 1).
    Raises RenderFailure on a record of the wrong kind or with no source/category.
    """
    lines = []
    for index, record in enumerate(records):
        if record.kind is not batch.kind:
            raise RenderFailure(
                f"{batch.kind.value} batch at offset {batch.offset} received a {record.kind.value} record"
            )
        lines.append(format_record_line(batch.offset + index + 1, record.amount, record.label(), record.created_at))
    return lines


def render_chunk(batch: Batch, records: Sequence[Record], work_dir: str | Path) -> Fragment:
    if len(records) > batch.limit:
        raise RenderFailure(f"batch at offset {batch.offset} got {len(records)} records, limit is {batch.limit}")
    # Build every line before touching disk so a bad record leaves no file behind
    lines = chunk_lines(batch, records)
    path = Path(work_dir) / chunk_filename(batch)
    try:
        w = PageWriter(path)
        w.line(chunk_heading(batch), font="Helvetica-Bold", size=14, align="center")
        w.move_down()
        for text in lines:
            w.line(text, size=10)
            w.break_if_full()
        pages = w.save()
    except OSError as e:
        raise RenderFailure(f"render {path.name} failed: {e}") from e
    return Fragment(role=FragmentRole(batch.kind.value), path=str(path), offset=batch.offset, page_count=pages)
