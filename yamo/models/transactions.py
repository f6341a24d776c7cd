import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, Field


class TransactionCreate(BaseModel):
    account_id: int
    category_id: int | None = None
    description: str = Field(min_length=1)
    note: str | None = None
    amount: Decimal = Decimal("0")
    date: dt.date
    exercised: bool = False


class TransactionUpdate(BaseModel):
    account_id: int | None = None
    category_id: int | None = None
    description: str | None = Field(default=None, min_length=1)
    note: str | None = None
    amount: Decimal | None = None
    date: dt.date | None = None
    exercised: bool | None = None


class TransactionResponse(BaseModel):
    id: int
    account_id: int
    category_id: int | None = None
    description: str
    note: str | None = None
    amount: Decimal
    date: dt.date
    exercised: bool = False
    created_at: dt.datetime | None = None
