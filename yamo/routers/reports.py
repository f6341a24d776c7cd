import calendar
import datetime as dt
from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from yamo.auth import AuthContext, get_current_auth
from yamo.db import supabase
from yamo.domain.permissions import Access
from yamo.models.reports import MonthlyReportResponse
from yamo.routers.accounts import _authorize_account

router = APIRouter(prefix="/api/reports", tags=["reports"])


def month_window(day: dt.date) -> tuple[dt.date, dt.date]:
    """First and last day of the month containing ``day``."""
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


@router.get("/monthly/{account_id}", response_model=MonthlyReportResponse)
async def monthly_report(
    account_id: int,
    date: dt.date = Query(...),
    auth: AuthContext = Depends(get_current_auth),
):
    """Transactions of an account in the month of ``date``, with projected and exercised totals."""
    _authorize_account(auth, account_id, Access.VIEW)
    account = supabase.table("accounts").select("*").eq("id", account_id).execute().data[0]

    start, end = month_window(date)
    result = supabase.table("transactions").select("*").eq("account_id", account_id).gte(
        "date", start.isoformat()
    ).lte("date", end.isoformat()).order("date").execute()
    transactions = result.data or []

    projected = sum((Decimal(str(row["amount"])) for row in transactions), Decimal("0"))
    exercised = sum((Decimal(str(row["amount"])) for row in transactions if row.get("exercised")), Decimal("0"))
    return {
        "id": account["id"],
        "name": account["name"],
        "note": account.get("note"),
        "type": account.get("type", "debit"),
        "start": start,
        "end": end,
        "total": projected,
        "total_projected": projected,
        "total_exercised": exercised,
        "transactions": transactions,
    }
