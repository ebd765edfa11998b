"""
Owner-scoped, paginated read access to income and expense records.
The report pipeline only consumes the RecordStore interface; SqlRecordStore is the
SQLAlchemy implementation wired in by the HTTP layer and opened inside worker processes.
"""
from __future__ import annotations

import threading
from typing import Protocol

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from db.models import Expense, Income
from db.session import make_engine
from reporting.errors import RecordReadFailure
from reporting.report_data import ExpenseRecord, IncomeRecord, Record, RecordKind

_MODELS = {RecordKind.INCOME: Income, RecordKind.EXPENSE: Expense}

# One engine per database URL per process; render workers are spawned, so they never inherit these
_SESSION_FACTORIES: dict[str, sessionmaker] = {}
_SESSION_FACTORIES_LOCK = threading.Lock()


class RecordStore(Protocol):
    def count_by_owner_and_kind(self, owner_id: int, kind: RecordKind) -> int: ...

    def find_page(self, owner_id: int, kind: RecordKind, offset: int, limit: int) -> list[Record]: ...

    def aggregate_sum(self, owner_id: int, kind: RecordKind) -> float: ...


def _to_record(kind: RecordKind, row) -> Record:
    if kind is RecordKind.INCOME:
        return IncomeRecord(id=row.id, amount=float(row.amount), created_at=row.created_at, source=row.source)
    return ExpenseRecord(id=row.id, amount=float(row.amount), created_at=row.created_at, category=row.category)


class SqlRecordStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def count_by_owner_and_kind(self, owner_id: int, kind: RecordKind) -> int:
        kind = RecordKind(kind)
        model = _MODELS[kind]
        with self._session_factory() as db:
            try:
                return db.query(func.count(model.id)).filter(model.user_id == owner_id).scalar() or 0
            except SQLAlchemyError as e:
                raise RecordReadFailure(f"count {kind.value} failed: {e}") from e

    def find_page(self, owner_id: int, kind: RecordKind, offset: int, limit: int) -> list[Record]:
        """Records ordered by created_at desc, id asc so offset windows never overlap or skip."""
        kind = RecordKind(kind)
        model = _MODELS[kind]
        with self._session_factory() as db:
            try:
                rows = (
                    db.query(model)
                    .filter(model.user_id == owner_id)
                    .order_by(model.created_at.desc(), model.id.asc())
                    .offset(offset)
                    .limit(limit)
                    .all()
                )
            except SQLAlchemyError as e:
                raise RecordReadFailure(f"read {kind.value} page offset={offset} failed: {e}") from e
            return [_to_record(kind, row) for row in rows]

    def aggregate_sum(self, owner_id: int, kind: RecordKind) -> float:
        kind = RecordKind(kind)
        model = _MODELS[kind]
        with self._session_factory() as db:
            try:
                total = (
                    db.query(func.coalesce(func.sum(model.amount), 0.0))
                    .filter(model.user_id == owner_id)
                    .scalar()
                )
            except SQLAlchemyError as e:
                raise RecordReadFailure(f"sum {kind.value} failed: {e}") from e
        return float(total or 0.0)


def open_record_store(database_url: str) -> SqlRecordStore:
    """Picklable store factory: use functools.partial(open_record_store, url) across process boundaries."""
    with _SESSION_FACTORIES_LOCK:
        factory = _SESSION_FACTORIES.get(database_url)
        if factory is None:
            factory = sessionmaker(autocommit=False, autoflush=False, bind=make_engine(database_url))
            _SESSION_FACTORIES[database_url] = factory
    return SqlRecordStore(factory)
