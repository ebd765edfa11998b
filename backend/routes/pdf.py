"""PDF export of the owner's full financial report."""
from __future__ import annotations

import functools
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from auth import require_user
from db.session import DATABASE_URL
from record_store import open_record_store
from reporting.pipeline import REPORT_FILENAME, export_report

router = APIRouter(prefix="/api/pdf", tags=["pdf"])

_LOG = logging.getLogger("uvicorn.error")


@router.get("/export")
def export_pdf(user_id: int = Depends(require_user)):
    # Sync handler: runs in the threadpool while workers render
    try:
        pdf_bytes = export_report(user_id, functools.partial(open_record_store, DATABASE_URL))
    except Exception as e:
        _LOG.exception("PDF export error owner=%s", user_id)
        return JSONResponse(
            status_code=500,
            content={
                "message": "Something went wrong while generating PDF",
                "error": str(e) or type(e).__name__,
            },
        )
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={REPORT_FILENAME}"},
    )
