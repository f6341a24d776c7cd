from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

AccountType = Literal["debit", "credit"]


class AccountCreate(BaseModel):
    book_id: int
    name: str = Field(min_length=1)
    note: str | None = None
    type: AccountType = "debit"


class AccountUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    note: str | None = None
    type: AccountType | None = None


class AccountResponse(BaseModel):
    id: int
    book_id: int
    name: str
    note: str | None = None
    type: AccountType = "debit"
    created_at: datetime | None = None


class AccountBalanceResponse(BaseModel):
    exercised_balance: Decimal = Decimal("0")
    projected_balance: Decimal = Decimal("0")
