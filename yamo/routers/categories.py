from fastapi import APIRouter, Depends, HTTPException, Query, status

from yamo.auth import AuthContext, get_current_auth, require_team_access
from yamo.db import supabase
from yamo.domain.permissions import Access
from yamo.domain.teams import get_team_by_book_id, get_team_by_category_id
from yamo.models.categories import CategoryCreate, CategoryResponse, CategoryUpdate

router = APIRouter(prefix="/api/categories", tags=["categories"])


def _authorize_book(auth: AuthContext, book_id: int, access: Access) -> None:
    team = get_team_by_book_id(book_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    require_team_access(auth, team["id"], access)


def _authorize_category(auth: AuthContext, category_id: int, access: Access) -> None:
    team = get_team_by_category_id(category_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    require_team_access(auth, team["id"], access)


def _check_parent(book_id: int, parent_category_id: int | None) -> None:
    if parent_category_id is None:
        return
    parent = supabase.table("categories").select("id").eq("id", parent_category_id).eq("book_id", book_id).execute()
    if not parent.data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Parent category not found in this book")


@router.get("/", response_model=list[CategoryResponse])
async def list_categories(book_id: int = Query(...), auth: AuthContext = Depends(get_current_auth)):
    """Categories of a book."""
    _authorize_book(auth, book_id, Access.VIEW)
    result = supabase.table("categories").select("*").eq("book_id", book_id).order("name").execute()
    return result.data


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: int, auth: AuthContext = Depends(get_current_auth)):
    _authorize_category(auth, category_id, Access.VIEW)
    result = supabase.table("categories").select("*").eq("id", category_id).execute()
    return result.data[0]


@router.post("/", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(data: CategoryCreate, auth: AuthContext = Depends(get_current_auth)):
    _authorize_book(auth, data.book_id, Access.WRITE)
    _check_parent(data.book_id, data.parent_category_id)
    result = supabase.table("categories").insert(data.model_dump()).execute()
    return result.data[0]


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(category_id: int, data: CategoryUpdate, auth: AuthContext = Depends(get_current_auth)):
    _authorize_category(auth, category_id, Access.WRITE)

    update_data = data.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if update_data.get("parent_category_id") == category_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A category cannot be its own parent")

    if update_data.get("parent_category_id") is not None:
        current = supabase.table("categories").select("book_id").eq("id", category_id).execute()
        _check_parent(current.data[0]["book_id"], update_data["parent_category_id"])

    result = supabase.table("categories").update(update_data).eq("id", category_id).execute()
    return result.data[0]


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Delete a category; transactions and subcategories keep existing without it."""
    _authorize_category(auth, category_id, Access.WRITE)
    category = supabase.table("categories").select("id, book_id").eq("id", category_id).execute().data[0]
    accounts = supabase.table("accounts").select("id").eq("book_id", category["book_id"]).execute()
    account_ids = [account["id"] for account in accounts.data or []]
    if account_ids:
        supabase.table("transactions").update({"category_id": None}).eq("category_id", category_id).in_(
            "account_id", account_ids
        ).execute()
    supabase.table("categories").update({"parent_category_id": None}).eq("parent_category_id", category_id).execute()
    supabase.table("categories").delete().eq("id", category_id).execute()
    return None
