from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status

from yamo.auth import AuthContext, get_current_auth, get_current_super_admin, require_team_access
from yamo.db import supabase
from yamo.domain.permissions import Access
from yamo.domain.teams import get_book_by_id, get_team_by_id, purge_book_data
from yamo.models.books import BookCreate, BookResponse, BookUpdate
from yamo.observability import log_event

router = APIRouter(prefix="/api/books", tags=["books"])


def _get_book_for(auth: AuthContext, book_id: int, access: Access, include_deleted: bool = False) -> dict:
    """Load a book and enforce ``access`` on the team that owns it."""
    book = get_book_by_id(book_id, include_deleted=include_deleted)
    if not book or not get_team_by_id(book["team_id"]):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    require_team_access(auth, book["team_id"], access)
    return book


@router.get("/", response_model=list[BookResponse])
async def list_books(
    team_id: int = Query(..., alias="teamId"),
    deleted: bool = Query(False),
    auth: AuthContext = Depends(get_current_auth),
):
    """Books of a team. The recycle bin (``deleted=true``) needs the admin role."""
    if not get_team_by_id(team_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    require_team_access(auth, team_id, Access.ADMIN if deleted else Access.VIEW)

    result = supabase.table("books").select("*").eq("team_id", team_id).order("name").execute()
    return [book for book in result.data or [] if bool(book.get("deleted_at")) == deleted]


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(book_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Get a book by ID."""
    return _get_book_for(auth, book_id, Access.VIEW)


@router.post("/", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(data: BookCreate, auth: AuthContext = Depends(get_current_auth)):
    """Create a book in a team. Requires write access."""
    if not get_team_by_id(data.team_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    require_team_access(auth, data.team_id, Access.WRITE)

    result = supabase.table("books").insert({
        "team_id": data.team_id,
        "name": data.name,
        "note": data.note,
    }).execute()
    book = result.data[0]
    log_event("book_created", request_id=auth.request_id, book_id=book["id"], team_id=data.team_id)
    return book


@router.put("/{book_id}", response_model=BookResponse)
async def update_book(book_id: int, data: BookUpdate, auth: AuthContext = Depends(get_current_auth)):
    """Update a book. Requires write access."""
    _get_book_for(auth, book_id, Access.WRITE)

    update_data = data.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    result = supabase.table("books").update(update_data).eq("id", book_id).is_("deleted_at", "null").execute()
    if not result.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return result.data[0]


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(book_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Soft delete a book. Requires the team admin role."""
    _get_book_for(auth, book_id, Access.ADMIN)

    supabase.table("books").update({
        "deleted_at": datetime.now(timezone.utc).isoformat()
    }).eq("id", book_id).is_("deleted_at", "null").execute()
    log_event("book_deleted", request_id=auth.request_id, book_id=book_id)
    return None


@router.post("/{book_id}/restore", response_model=BookResponse)
async def restore_book(book_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Restore a soft-deleted book. Requires the team admin role."""
    book = _get_book_for(auth, book_id, Access.ADMIN, include_deleted=True)
    if not book.get("deleted_at"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Book is not deleted")

    result = supabase.table("books").update({"deleted_at": None}).eq("id", book_id).execute()
    log_event("book_restored", request_id=auth.request_id, book_id=book_id)
    return result.data[0]


@router.delete("/{book_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
async def purge_book(book_id: int, auth: AuthContext = Depends(get_current_super_admin)):
    """Hard delete a book and its ledger data. Superadmin only."""
    book = get_book_by_id(book_id, include_deleted=True)
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    purge_book_data(book_id)
    supabase.table("books").delete().eq("id", book_id).execute()
    log_event("book_purged", request_id=auth.request_id, book_id=book_id)
    return None
