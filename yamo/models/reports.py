import datetime as dt
from decimal import Decimal

from pydantic import BaseModel

from yamo.models.accounts import AccountType
from yamo.models.transactions import TransactionResponse


class MonthlyReportResponse(BaseModel):
    id: int
    name: str
    note: str | None = None
    type: AccountType = "debit"
    start: dt.date
    end: dt.date
    total: Decimal
    total_projected: Decimal
    total_exercised: Decimal
    transactions: list[TransactionResponse]
