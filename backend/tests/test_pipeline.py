"""End-to-end export: concurrent dispatch, ordered assembly, cleanup on every path."""
from __future__ import annotations

import functools
import time
from datetime import datetime, timedelta

import pytest

import jobs.tasks
from jobs.dispatcher import plan_batches, run_render_tasks
from reporting.errors import ExportTimeout, RecordReadFailure, RenderFailure, ResourceCleanupFailure
from reporting.pipeline import export_report
from reporting.report_builder import FOOTER_TEXT
from reporting.report_data import RecordKind, Summary
from reporting.work_area import WorkArea

from fakes import FakeRecordStore, chunk_headings, make_expenses, make_incomes, pdf_page_texts, wait_until


def _export(store, tmp_path, **kwargs):
    kwargs.setdefault("executor_kind", "thread")
    kwargs.setdefault("max_workers", 8)
    return export_report(1, store.factory(), temp_dir=tmp_path, **kwargs)


@pytest.mark.parametrize("seed", range(5))
def test_fragment_order_ignores_completion_order(tmp_path, seed):
    store = FakeRecordStore(make_incomes(10), make_expenses(7), latency=0.03, seed=seed)
    pdf = _export(store, tmp_path, page_limit=3)
    texts = pdf_page_texts(pdf)

    assert "Financial Report" in texts[0]
    assert FOOTER_TEXT in texts[-1]
    assert chunk_headings(texts) == [
        "INCOME Details (Batch starting at 0)",
        "INCOME Details (Batch starting at 3)",
        "INCOME Details (Batch starting at 6)",
        "INCOME Details (Batch starting at 9)",
        "EXPENSE Details (Batch starting at 0)",
        "EXPENSE Details (Batch starting at 3)",
        "EXPENSE Details (Batch starting at 6)",
    ]
    assert list(tmp_path.iterdir()) == []


def test_dispatch_returns_one_fragment_per_batch(tmp_path):
    store = FakeRecordStore(make_incomes(5), make_expenses(5), latency=0.02, seed=3)
    batches = plan_batches(RecordKind.INCOME, 5, 2) + plan_batches(RecordKind.EXPENSE, 5, 2)
    fragments = run_render_tasks(
        Summary(500, 50), batches, 1, store.factory(), str(tmp_path), executor_kind="thread", max_workers=4
    )
    keys = sorted((f.role.value, f.offset) for f in fragments)
    assert keys == sorted(
        [("header", 0), ("footer", 0)]
        + [("income", o) for o in (0, 2, 4)]
        + [("expense", o) for o in (0, 2, 4)]
    )
    assert sorted(store.page_reads) == sorted((b.kind, b.offset, b.limit) for b in batches)


def test_every_record_rendered_once_with_global_rank(tmp_path):
    store = FakeRecordStore(make_incomes(11, amount=5), latency=0.01, seed=7)
    texts = pdf_page_texts(_export(store, tmp_path, page_limit=4))
    body = "\n".join(texts)
    for rank in range(1, 12):
        assert f"{rank}. $5.00 - SALARY" in body
    assert "12. $5.00" not in body


def test_scenario_2500_expenses_500_incomes(tmp_path):
    store = FakeRecordStore(make_incomes(500, amount=20), make_expenses(2500, amount=2))
    texts = pdf_page_texts(_export(store, tmp_path, page_limit=2000, max_workers=4))

    assert chunk_headings(texts) == [
        "INCOME Details (Batch starting at 0)",
        "EXPENSE Details (Batch starting at 0)",
        "EXPENSE Details (Batch starting at 2000)",
    ]
    assert "Total Income: $10000.00" in texts[0]
    assert "Total Expenses: $5000.00" in texts[0]
    assert "Current Balance: $5000.00" in texts[0]
    body = "\n".join(texts)
    assert "2001. $2.00 - FOOD" in body
    assert "2500. $2.00 - FOOD" in body
    assert FOOTER_TEXT in texts[-1]


def test_no_records_gives_header_and_footer_only(tmp_path):
    texts = pdf_page_texts(_export(FakeRecordStore(), tmp_path))
    assert len(texts) == 2
    assert "Total Income: $0.00" in texts[0]
    assert "Total Expenses: $0.00" in texts[0]
    assert "Current Balance: $0.00" in texts[0]
    assert FOOTER_TEXT in texts[1]
    assert chunk_headings(texts) == []


def test_summary_round_trip(tmp_path):
    incomes = make_incomes(3, amount=100.25)
    expenses = make_expenses(4, amount=80.5)
    store = FakeRecordStore(incomes, expenses)
    header = pdf_page_texts(_export(store, tmp_path))[0]
    income_sum = store.aggregate_sum(1, RecordKind.INCOME)
    expense_sum = store.aggregate_sum(1, RecordKind.EXPENSE)
    assert f"Total Income: ${income_sum:.2f}" in header
    assert f"Total Expenses: ${expense_sum:.2f}" in header
    assert f"Current Balance: ${income_sum - expense_sum:.2f}" in header


def test_stable_order_breaks_created_at_ties_by_id(tmp_path):
    same_time = datetime(2026, 1, 1)
    incomes = make_incomes(4)
    incomes = [type(r)(id=r.id, amount=float(r.id), created_at=same_time, source=r.source) for r in incomes]
    texts = pdf_page_texts(_export(FakeRecordStore(incomes), tmp_path, page_limit=2))
    body = "\n".join(texts)
    for rank in range(1, 5):
        assert f"{rank}. ${rank:.2f} - SALARY" in body


def test_malformed_record_fails_export_and_cleans_up(tmp_path):
    expenses = make_expenses(9)
    bad = make_expenses(9, category=None)[4]
    expenses[4] = bad
    store = FakeRecordStore(make_incomes(6), expenses, latency=0.02, seed=1)
    with pytest.raises(RenderFailure, match="missing its category"):
        _export(store, tmp_path, page_limit=3)
    assert list(tmp_path.iterdir()) == []


def test_read_failure_is_retried_in_place(tmp_path, monkeypatch):
    monkeypatch.setattr(jobs.tasks, "READ_RETRY_DELAY_S", 0)
    store = FakeRecordStore(make_incomes(6), fail_reads={(RecordKind.INCOME, 3): 1})
    texts = pdf_page_texts(_export(store, tmp_path, page_limit=3))
    assert chunk_headings(texts) == [
        "INCOME Details (Batch starting at 0)",
        "INCOME Details (Batch starting at 3)",
    ]
    assert store.page_reads.count((RecordKind.INCOME, 3, 3)) == 2


def test_persistent_read_failure_fails_export(tmp_path, monkeypatch):
    monkeypatch.setattr(jobs.tasks, "READ_RETRY_DELAY_S", 0)
    store = FakeRecordStore(make_incomes(6), fail_reads={(RecordKind.INCOME, 0): 5})
    with pytest.raises(RecordReadFailure):
        _export(store, tmp_path, page_limit=3)
    assert list(tmp_path.iterdir()) == []


def test_summary_read_failure_fails_before_dispatch(tmp_path):
    class BrokenStore(FakeRecordStore):
        def aggregate_sum(self, owner_id, kind):
            raise ConnectionError("database is down")

    store = BrokenStore(make_incomes(2))
    with pytest.raises(RecordReadFailure, match="database is down"):
        _export(store, tmp_path)
    assert store.page_reads == []
    assert list(tmp_path.iterdir()) == []


def test_hung_task_times_out_and_work_area_is_removed(tmp_path):
    store = FakeRecordStore(make_incomes(4), hang=(RecordKind.INCOME, 2, 1.0))
    with pytest.raises(ExportTimeout):
        _export(store, tmp_path, page_limit=2, timeout=0.3)
    assert list(tmp_path.iterdir()) == []


def test_failed_batch_does_not_wait_past_deadline_for_hung_sibling(tmp_path, monkeypatch):
    monkeypatch.setattr(jobs.tasks, "READ_RETRY_DELAY_S", 0)
    store = FakeRecordStore(
        make_incomes(4),
        fail_reads={(RecordKind.INCOME, 0): 5},
        hang=(RecordKind.INCOME, 2, 3.0),
    )
    start = time.monotonic()
    with pytest.raises(RecordReadFailure):
        _export(store, tmp_path, page_limit=2, timeout=0.5)
    assert time.monotonic() - start < 2.0
    assert wait_until(lambda: list(tmp_path.iterdir()) == [])


def test_fragment_written_by_abandoned_task_is_removed_once_it_finishes(tmp_path, monkeypatch):
    original_remove = WorkArea._remove
    calls = []

    def remove_racing_a_straggler(self):
        calls.append(self.export_id)
        if len(calls) == 1:
            raise ResourceCleanupFailure("directory not empty")
        original_remove(self)

    monkeypatch.setattr(WorkArea, "_remove", remove_racing_a_straggler)
    store = FakeRecordStore(make_incomes(4), hang=(RecordKind.INCOME, 2, 0.6))
    with pytest.raises(ExportTimeout):
        _export(store, tmp_path, page_limit=2, timeout=0.2)
    assert list(tmp_path.iterdir()) != []

    assert wait_until(lambda: list(tmp_path.iterdir()) == [])
    assert len(calls) == 2


def test_process_executor_against_sqlite(tmp_path):
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from db.models import Expense, Income, User
    from db.session import Base
    from record_store import open_record_store

    url = f"sqlite:///{tmp_path / 'process.db'}"
    engine = create_engine(url)
    Base.metadata.create_all(engine)
    with sessionmaker(bind=engine)() as db:
        user = User(email="proc@example.com", password="x")
        db.add(user)
        db.flush()
        base = datetime(2026, 2, 1)
        for i in range(5):
            db.add(Income(amount=10 + i, source="job", user_id=user.id, created_at=base - timedelta(days=i)))
        for i in range(3):
            db.add(Expense(amount=1, category="fees", user_id=user.id, created_at=base - timedelta(days=i)))
        db.commit()
        owner_id = user.id
    engine.dispose()

    work = tmp_path / "exports"
    pdf = export_report(
        owner_id,
        functools.partial(open_record_store, url),
        page_limit=2,
        executor_kind="process",
        max_workers=2,
        temp_dir=work,
    )
    texts = pdf_page_texts(pdf)
    assert chunk_headings(texts) == [
        "INCOME Details (Batch starting at 0)",
        "INCOME Details (Batch starting at 2)",
        "INCOME Details (Batch starting at 4)",
        "EXPENSE Details (Batch starting at 0)",
        "EXPENSE Details (Batch starting at 2)",
    ]
    body = "\n".join(texts)
    assert "1. $10.00 - JOB (2/1/2026)" in body
    assert "5. $14.00 - JOB (1/28/2026)" in body
    assert "Total Income: $60.00" in texts[0]
    assert list(work.iterdir()) == []
