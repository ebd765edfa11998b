from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class SignupRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Valid email is required")
        return v


class SigninRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class IncomeCreate(BaseModel):
    """Income entry. source is optional here; the PDF export rejects incomes without one."""
    amount: float = Field(gt=0, description="Valid amount is required")
    source: Optional[str] = None
    description: Optional[str] = None


class ExpenseCreate(BaseModel):
    amount: float = Field(gt=0, description="Valid amount is required")
    category: str = Field(min_length=1, description="Valid category is required")
    description: Optional[str] = None
