import datetime as dt

from fastapi import APIRouter, Depends, HTTPException, Query, status

from yamo.auth import AuthContext, get_current_auth, require_team_access
from yamo.db import supabase
from yamo.domain.permissions import Access
from yamo.domain.teams import get_team_by_account_id, get_team_by_book_id, get_team_by_transaction_id
from yamo.models.transactions import TransactionCreate, TransactionResponse, TransactionUpdate

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


def _team_id_for_account(account_id: int) -> int:
    team = get_team_by_account_id(account_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return team["id"]


def _book_id_for_account(account_id: int) -> int:
    result = supabase.table("accounts").select("id, book_id").eq("id", account_id).execute()
    if not result.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return result.data[0]["book_id"]


def _check_category(book_id: int, category_id: int | None) -> None:
    if category_id is None:
        return
    category = supabase.table("categories").select("id").eq("id", category_id).eq("book_id", book_id).execute()
    if not category.data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category not found in this book")


def _authorize_transaction(auth: AuthContext, transaction_id: int, access: Access) -> dict:
    team = get_team_by_transaction_id(transaction_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    require_team_access(auth, team["id"], access)
    result = supabase.table("transactions").select("*").eq("id", transaction_id).execute()
    return result.data[0]


@router.get("/", response_model=list[TransactionResponse])
async def list_transactions(
    book_id: int = Query(...),
    account_id: int | None = Query(None),
    start_date: dt.date | None = Query(None),
    end_date: dt.date | None = Query(None),
    auth: AuthContext = Depends(get_current_auth),
):
    """Transactions of a book, optionally limited to one account and a date range."""
    team = get_team_by_book_id(book_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    require_team_access(auth, team["id"], Access.VIEW)

    accounts = supabase.table("accounts").select("id").eq("book_id", book_id).execute()
    account_ids = [account["id"] for account in accounts.data or []]
    if account_id is not None:
        if account_id not in account_ids:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
        account_ids = [account_id]
    if not account_ids:
        return []

    query = supabase.table("transactions").select("*").in_("account_id", account_ids)
    if start_date:
        query = query.gte("date", start_date.isoformat())
    if end_date:
        query = query.lte("date", end_date.isoformat())
    result = query.order("date").execute()
    return result.data


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(transaction_id: int, auth: AuthContext = Depends(get_current_auth)):
    return _authorize_transaction(auth, transaction_id, Access.VIEW)


@router.post("/", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(data: TransactionCreate, auth: AuthContext = Depends(get_current_auth)):
    require_team_access(auth, _team_id_for_account(data.account_id), Access.WRITE)
    _check_category(_book_id_for_account(data.account_id), data.category_id)
    result = supabase.table("transactions").insert(data.model_dump(mode="json")).execute()
    return result.data[0]


@router.put("/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    auth: AuthContext = Depends(get_current_auth),
):
    """Update a transaction, including toggling ``exercised``. Requires write access."""
    transaction = _authorize_transaction(auth, transaction_id, Access.WRITE)

    update_data = data.model_dump(mode="json", exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if "account_id" in update_data:
        # moving a transaction must stay inside the caller's writable team
        require_team_access(auth, _team_id_for_account(update_data["account_id"]), Access.WRITE)
    if "account_id" in update_data or "category_id" in update_data:
        account_id = update_data.get("account_id", transaction["account_id"])
        category_id = update_data.get("category_id", transaction.get("category_id"))
        _check_category(_book_id_for_account(account_id), category_id)

    result = supabase.table("transactions").update(update_data).eq("id", transaction_id).execute()
    return result.data[0]


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(transaction_id: int, auth: AuthContext = Depends(get_current_auth)):
    _authorize_transaction(auth, transaction_id, Access.WRITE)
    supabase.table("transactions").delete().eq("id", transaction_id).execute()
    return None
