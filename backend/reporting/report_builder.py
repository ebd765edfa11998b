"""
Header and footer fragments of the financial report, plus the A4 layout shared with
the chunk renderer. Fragments are written with reportlab and merged later with pypdf.
"""
from __future__ import annotations

from pathlib import Path

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from .errors import RenderFailure
from .format_utils import format_currency
from .report_data import Fragment, FragmentRole, Summary

PAGE_W, PAGE_H = A4
MARGIN = 50
# Start a new page once the cursor drops below this (700pt down from the top edge)
BREAK_Y = PAGE_H - 700

REPORT_TITLE = "Financial Report"
SUMMARY_TITLE = "Financial Summary"
FOOTER_TEXT = "This report was generated automatically by the Expense Tracker system."

HEADER_FILENAME = "header.pdf"
FOOTER_FILENAME = "footer.pdf"


class PageWriter:
    """Top-down text cursor over a reportlab canvas. Pages are added lazily so no blank trailing page is emitted."""

    def __init__(self, path: str | Path):
        self.canvas = canvas.Canvas(str(path), pagesize=A4)
        self.y = PAGE_H - MARGIN
        self.pages = 1
        self._break_pending = False

    def line(self, text: str, font: str = "Helvetica", size: float = 10, align: str = "left") -> None:
        if self._break_pending:
            self.canvas.showPage()
            self.pages += 1
            self.y = PAGE_H - MARGIN
            self._break_pending = False
        self.y -= size
        self.canvas.setFont(font, size)
        if align == "center":
            self.canvas.drawCentredString(PAGE_W / 2, self.y, text)
        else:
            self.canvas.drawString(MARGIN, self.y, text)
        self.y -= size * 0.4

    def move_down(self, lines: float = 1, size: float = 12) -> None:
        self.y -= size * 1.2 * lines

    def break_if_full(self) -> None:
        if self.y < BREAK_Y:
            self._break_pending = True

    def save(self) -> int:
        self.canvas.save()
        return self.pages


def render_header(summary: Summary, work_dir: str | Path) -> Fragment:
    """Title plus the three summary totals."""
    path = Path(work_dir) / HEADER_FILENAME
    try:
        w = PageWriter(path)
        w.line(REPORT_TITLE, font="Helvetica-Bold", size=24, align="center")
        w.move_down()
        w.line(SUMMARY_TITLE, font="Helvetica-Bold", size=16)
        w.move_down(0.5)
        w.line(f"Total Income: {format_currency(summary.total_income)}", size=12)
        w.line(f"Total Expenses: {format_currency(summary.total_expenses)}", size=12)
        w.line(f"Current Balance: {format_currency(summary.balance)}", size=12)
        pages = w.save()
    except OSError as e:
        raise RenderFailure(f"header render failed: {e}") from e
    return Fragment(role=FragmentRole.HEADER, path=str(path), page_count=pages)


def render_footer(work_dir: str | Path) -> Fragment:
    path = Path(work_dir) / FOOTER_FILENAME
    try:
        c = canvas.Canvas(str(path), pagesize=A4)
        c.setFont("Helvetica", 8)
        c.drawCentredString(PAGE_W / 2, MARGIN, FOOTER_TEXT)
        c.save()
    except OSError as e:
        raise RenderFailure(f"footer render failed: {e}") from e
    return Fragment(role=FragmentRole.FOOTER, path=str(path), page_count=1)
