"""Error kinds raised while exporting a report. Any ExportError aborts the whole export."""
from __future__ import annotations


class ExportError(Exception):
    """Base class: the export failed and no document is produced."""


class RecordReadFailure(ExportError):
    """The record store query failed."""


class RenderFailure(ExportError):
    """A fragment could not be rendered (e.g. a record is missing its source/category)."""


class AssemblyFailure(ExportError):
    """Fragments could not be merged into the final document."""


class ExportTimeout(ExportError):
    """The export did not finish within REPORT_EXPORT_TIMEOUT."""


class ResourceCleanupFailure(Exception):
    """Temporary fragment storage could not be removed. Logged, never raised to callers."""
