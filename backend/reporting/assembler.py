"""
Merge rendered fragments into the final report:
header, income chunks by offset, expense chunks by offset, footer.
Order depends only on (role, offset), never on the order tasks finished in.
"""
from __future__ import annotations

from io import BytesIO
from typing import Iterable

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from .errors import AssemblyFailure
from .report_data import Fragment, FragmentRole


def order_fragments(fragments: Iterable[Fragment]) -> list[Fragment]:
    """Sort fragments into document order. Requires exactly one header and footer and unique (role, offset)."""
    fragments = list(fragments)
    roles = [f.role for f in fragments]
    for role in (FragmentRole.HEADER, FragmentRole.FOOTER):
        if roles.count(role) != 1:
            raise AssemblyFailure(f"expected exactly one {role.value} fragment, got {roles.count(role)}")
    seen: set[tuple[int, int]] = set()
    for f in fragments:
        if f.sort_key in seen:
            raise AssemblyFailure(f"duplicate {f.role.value} fragment at offset {f.offset}")
        seen.add(f.sort_key)
    return sorted(fragments, key=lambda f: f.sort_key)


def assemble_document(fragments: Iterable[Fragment]) -> bytes:
    """Concatenate every page of every fragment in document order and return the PDF bytes."""
    ordered = order_fragments(fragments)
    writer = PdfWriter()
    for fragment in ordered:
        try:
            reader = PdfReader(fragment.path)
            # Keep a multi-page fragment contiguous
            for page in reader.pages:
                writer.add_page(page)
        except (OSError, ValueError, PyPdfError) as e:
            raise AssemblyFailure(f"cannot merge {fragment.role.value} fragment {fragment.path}: {e}") from e
    out = BytesIO()
    try:
        writer.write(out)
    except (OSError, PyPdfError) as e:
        raise AssemblyFailure(f"cannot write merged report: {e}") from e
    return out.getvalue()
