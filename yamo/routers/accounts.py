import datetime as dt
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from yamo.auth import AuthContext, get_current_auth, require_team_access
from yamo.db import supabase
from yamo.domain.permissions import Access
from yamo.domain.teams import get_team_by_account_id, get_team_by_book_id
from yamo.models.accounts import AccountBalanceResponse, AccountCreate, AccountResponse, AccountUpdate

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


def _authorize_book(auth: AuthContext, book_id: int, access: Access) -> None:
    team = get_team_by_book_id(book_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    require_team_access(auth, team["id"], access)


def _authorize_account(auth: AuthContext, account_id: int, access: Access) -> None:
    team = get_team_by_account_id(account_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    require_team_access(auth, team["id"], access)


@router.get("/", response_model=list[AccountResponse])
async def list_accounts(book_id: int = Query(...), auth: AuthContext = Depends(get_current_auth)):
    """Accounts of a book."""
    _authorize_book(auth, book_id, Access.VIEW)
    result = supabase.table("accounts").select("*").eq("book_id", book_id).order("name").execute()
    return result.data


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(account_id: int, auth: AuthContext = Depends(get_current_auth)):
    _authorize_account(auth, account_id, Access.VIEW)
    result = supabase.table("accounts").select("*").eq("id", account_id).execute()
    return result.data[0]


@router.get("/{account_id}/balance", response_model=AccountBalanceResponse)
async def get_account_balance(
    account_id: int,
    up_to_date: dt.date | None = Query(None, alias="upToDate"),
    auth: AuthContext = Depends(get_current_auth),
):
    """Exercised and projected balance of an account up to a date (today by default)."""
    _authorize_account(auth, account_id, Access.VIEW)

    balance_date = up_to_date or dt.date.today()
    result = supabase.table("transactions").select("amount, exercised").eq("account_id", account_id).lte(
        "date", balance_date.isoformat()
    ).execute()
    rows = result.data or []
    return AccountBalanceResponse(
        exercised_balance=sum((Decimal(str(row["amount"])) for row in rows if row.get("exercised")), Decimal("0")),
        projected_balance=sum((Decimal(str(row["amount"])) for row in rows), Decimal("0")),
    )


@router.post("/", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(data: AccountCreate, auth: AuthContext = Depends(get_current_auth)):
    _authorize_book(auth, data.book_id, Access.WRITE)
    result = supabase.table("accounts").insert(data.model_dump()).execute()
    return result.data[0]


@router.put("/{account_id}", response_model=AccountResponse)
async def update_account(account_id: int, data: AccountUpdate, auth: AuthContext = Depends(get_current_auth)):
    _authorize_account(auth, account_id, Access.WRITE)

    update_data = data.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    result = supabase.table("accounts").update(update_data).eq("id", account_id).execute()
    return result.data[0]


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(account_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Delete an account and its transactions."""
    _authorize_account(auth, account_id, Access.WRITE)
    supabase.table("transactions").delete().eq("account_id", account_id).execute()
    supabase.table("accounts").delete().eq("id", account_id).execute()
    return None
