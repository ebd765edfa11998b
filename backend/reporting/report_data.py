"""
Value types passed between the record store, the render tasks and the assembler.
All are frozen dataclasses so they can be pickled into worker processes.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from .errors import RecordReadFailure, RenderFailure


class RecordKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class FragmentRole(str, Enum):
    HEADER = "header"
    INCOME = "income"
    EXPENSE = "expense"
    FOOTER = "footer"


# Position of each role in the final document
ROLE_ORDER = {
    FragmentRole.HEADER: 0,
    FragmentRole.INCOME: 1,
    FragmentRole.EXPENSE: 2,
    FragmentRole.FOOTER: 3,
}


@dataclass(frozen=True)
class IncomeRecord:
    id: int
    amount: float
    created_at: datetime
    source: Optional[str]

    kind = RecordKind.INCOME

    def label(self) -> str:
        if self.source is None or not str(self.source).strip():
            raise RenderFailure(f"income record {self.id} is missing its source")
        return str(self.source)


@dataclass(frozen=True)
class ExpenseRecord:
    id: int
    amount: float
    created_at: datetime
    category: Optional[str]

    kind = RecordKind.EXPENSE

    def label(self) -> str:
        if self.category is None or not str(self.category).strip():
            raise RenderFailure(f"expense record {self.id} is missing its category")
        return str(self.category)


Record = Union[IncomeRecord, ExpenseRecord]


@dataclass(frozen=True)
class Summary:
    total_income: float
    total_expenses: float

    @property
    def balance(self) -> float:
        return self.total_income - self.total_expenses


@dataclass(frozen=True)
class Batch:
    kind: RecordKind
    offset: int
    limit: int

    @property
    def end(self) -> int:
        return self.offset + self.limit


@dataclass(frozen=True)
class Fragment:
    """A rendered PDF on disk, pending merge. Identity is (role, offset)."""
    role: FragmentRole
    path: str
    offset: int = 0
    page_count: int = 0

    @property
    def sort_key(self) -> tuple[int, int]:
        return ROLE_ORDER[self.role], self.offset


def batch_count(count: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    if count <= 0:
        return 0
    return -(-count // page_size)


def build_summary(store, owner_id: int) -> Summary:
    """Aggregate totals for the report header. Store errors surface as RecordReadFailure."""
    try:
        total_income = store.aggregate_sum(owner_id, RecordKind.INCOME)
        total_expenses = store.aggregate_sum(owner_id, RecordKind.EXPENSE)
    except RecordReadFailure:
        raise
    except Exception as e:
        raise RecordReadFailure(f"summary query failed: {e}") from e
    return Summary(total_income=float(total_income or 0), total_expenses=float(total_expenses or 0))
