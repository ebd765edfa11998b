"""
Authenticated transaction API: add/list/delete incomes and expenses, and the dashboard summary.
Every query is scoped to the owner from require_user.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from auth import require_user
from db.models import Expense as ExpenseModel, Income as IncomeModel
from db.session import get_db
from models import ExpenseCreate, IncomeCreate

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


def _expense_payload(e: ExpenseModel) -> dict[str, Any]:
    return {
        "id": e.id,
        "amount": e.amount,
        "category": e.category,
        "description": e.description or "",
        "createdAt": e.created_at.isoformat() if e.created_at else None,
    }


def _income_payload(i: IncomeModel) -> dict[str, Any]:
    return {
        "id": i.id,
        "amount": i.amount,
        "source": i.source,
        "description": i.description or "",
        "createdAt": i.created_at.isoformat() if i.created_at else None,
    }


def _sum(db: Session, model, *criteria) -> float:
    total = db.query(func.coalesce(func.sum(model.amount), 0.0)).filter(*criteria).scalar()
    return float(total or 0.0)


# --- Income ---

@router.get("/income")
def list_incomes(user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    incomes = (
        db.query(IncomeModel)
        .filter(IncomeModel.user_id == user_id)
        .order_by(IncomeModel.created_at.desc(), IncomeModel.id.asc())
        .all()
    )
    return {"incomes": [_income_payload(i) for i in incomes]}


@router.post("/income/add", status_code=201)
def add_income(body: IncomeCreate, user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    income = IncomeModel(
        amount=body.amount,
        source=body.source,
        description=body.description or "",
        user_id=user_id,
    )
    db.add(income)
    db.commit()
    db.refresh(income)
    return {"message": "Income created successfully", "income": _income_payload(income)}


@router.delete("/deleteIncome/{income_id}")
def delete_income(income_id: int, user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    income = (
        db.query(IncomeModel)
        .filter(IncomeModel.id == income_id, IncomeModel.user_id == user_id)
        .first()
    )
    if not income:
        raise HTTPException(status_code=404, detail="Income not found or unauthorized")
    db.delete(income)
    db.commit()
    return {"message": "Income deleted successfully"}


# --- Expense ---

@router.get("/expense")
def list_expenses(
    category: Optional[str] = None,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    criteria = [ExpenseModel.user_id == user_id]
    if category:
        criteria.append(ExpenseModel.category == category)
    expenses = (
        db.query(ExpenseModel)
        .filter(*criteria)
        .order_by(ExpenseModel.created_at.desc(), ExpenseModel.id.asc())
        .all()
    )
    return {
        "expenses": [_expense_payload(e) for e in expenses],
        "totalAmount": _sum(db, ExpenseModel, *criteria),
    }


@router.post("/expense/add", status_code=201)
def add_expense(body: ExpenseCreate, user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    expense = ExpenseModel(
        amount=body.amount,
        category=body.category,
        description=body.description or "",
        user_id=user_id,
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    return {"message": "Expense created successfully", "expense": _expense_payload(expense)}


@router.delete("/deleteExpense/{expense_id}")
def delete_expense(expense_id: int, user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    expense = (
        db.query(ExpenseModel)
        .filter(ExpenseModel.id == expense_id, ExpenseModel.user_id == user_id)
        .first()
    )
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found or unauthorized")
    db.delete(expense)
    db.commit()
    return {"message": "Expense deleted successfully"}


# --- Summary ---

@router.get("/summary")
def financial_summary(user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    total_income = _sum(db, IncomeModel, IncomeModel.user_id == user_id)
    total_expenses = _sum(db, ExpenseModel, ExpenseModel.user_id == user_id)
    by_category = (
        db.query(ExpenseModel.category, func.sum(ExpenseModel.amount))
        .filter(ExpenseModel.user_id == user_id)
        .group_by(ExpenseModel.category)
        .all()
    )
    by_source = (
        db.query(IncomeModel.source, func.sum(IncomeModel.amount))
        .filter(IncomeModel.user_id == user_id)
        .group_by(IncomeModel.source)
        .all()
    )
    return {
        "summary": {
            "currentBalance": total_income - total_expenses,
            "totalIncome": total_income,
            "totalExpenses": total_expenses,
        },
        "expensesByCategory": [{"name": name, "value": float(value or 0)} for name, value in by_category],
        "incomeBySource": [{"name": name, "value": float(value or 0)} for name, value in by_source],
    }
