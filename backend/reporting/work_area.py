"""
Per-export scratch directories for rendered fragments.
Each export writes under REPORT_TEMP_DIR/<export_id>/ so fixed names such as header.pdf
never collide between concurrent exports.
"""
from __future__ import annotations

import logging
import os
import shutil
import threading
import uuid
from pathlib import Path

from .errors import ResourceCleanupFailure

logger = logging.getLogger(__name__)

TEMP_DIR = Path(os.environ.get("REPORT_TEMP_DIR", "") or Path(__file__).resolve().parents[1] / "temp")


def ensure_temp_dir(base_dir: Path | None = None) -> Path:
    base = Path(base_dir) if base_dir is not None else TEMP_DIR
    base.mkdir(parents=True, exist_ok=True)
    return base


class WorkArea:
    def __init__(self, export_id: str, path: Path):
        self.export_id = export_id
        self.path = path
        self.released = False
        self._lock = threading.Lock()

    @classmethod
    def create(cls, base_dir: Path | None = None) -> "WorkArea":
        export_id = uuid.uuid4().hex
        path = ensure_temp_dir(base_dir) / export_id
        path.mkdir()
        return cls(export_id, path)

    def release(self) -> bool:
        """
        Remove the directory and every fragment in it. Safe to call more than once and on
        partially written files, and from a task thread while the export thread releases.
        Failures are logged, never raised: returns False instead and a later call retries.
        """
        with self._lock:
            if self.released:
                return True
            try:
                self._remove()
            except ResourceCleanupFailure as e:
                logger.warning("[report] export_id=%s cleanup failed: %s", self.export_id, e)
                return False
            self.released = True
            return True

    def _remove(self) -> None:
        if not self.path.exists():
            return
        errors: list[str] = []
        for child in self.path.iterdir():
            try:
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink(missing_ok=True)
            except OSError as e:
                errors.append(f"{child.name}: {e}")
        try:
            self.path.rmdir()
        except FileNotFoundError:
            pass
        except OSError as e:
            errors.append(f"{self.path}: {e}")
        if errors:
            raise ResourceCleanupFailure("; ".join(errors))

    def __enter__(self) -> "WorkArea":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
