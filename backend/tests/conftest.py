"""Add backend to path so tests can use direct imports (main, reporting.pipeline, ...)."""
import os
import sys
import tempfile

_backend_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

# Must be set before db.session / routes.pdf are imported
_tmp = tempfile.mkdtemp(prefix="finance-tracker-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["REPORT_TEMP_DIR"] = os.path.join(_tmp, "exports")
os.environ["REPORT_EXECUTOR"] = "thread"
os.environ["JWT_SECRET"] = "test-secret"

import pytest  # noqa: E402


@pytest.fixture
def db_session():
    from db.session import SessionLocal, init_db

    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
