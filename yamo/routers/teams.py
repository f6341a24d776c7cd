from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status

from yamo.auth import AuthContext, get_current_auth, get_current_super_admin, require_team_access_or_superadmin
from yamo.db import supabase
from yamo.domain.permissions import Access, TeamRole
from yamo.domain.teams import count_team_admins, get_team_by_id, get_team_users, list_user_teams, purge_book_data
from yamo.models.teams import (
    TeamCreate,
    TeamMemberCreate,
    TeamMemberResponse,
    TeamMemberUpdate,
    TeamResponse,
    TeamUpdate,
)
from yamo.observability import log_event

router = APIRouter(prefix="/api/teams", tags=["teams"])


def _team_with_counts(team: dict) -> dict:
    books = supabase.table("books").select("id").eq("team_id", team["id"]).is_("deleted_at", "null").execute()
    members = supabase.table("team_users").select("user_id").eq("team_id", team["id"]).execute()
    return {**team, "book_count": len(books.data or []), "user_count": len(members.data or [])}


def _get_manageable_team(team_id: int, auth: AuthContext) -> dict:
    """Load a team for member management; soft-deleted teams are superadmin-only."""
    team = get_team_by_id(team_id, include_deleted=True)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    if team.get("deleted_at") and not auth.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot manage members of deleted teams. Please restore the team first.",
        )
    require_team_access_or_superadmin(auth, team_id, Access.ADMIN)
    return team


@router.get("/", response_model=list[TeamResponse])
async def list_teams(auth: AuthContext = Depends(get_current_auth)):
    """List teams the caller is a member of."""
    return list_user_teams(auth.user_id)


@router.get("/search", response_model=list[TeamResponse])
async def search_teams(
    q: str = Query(""),
    limit: int = Query(20, ge=1),
    include_deleted: bool = Query(False, alias="includeDeleted"),
    auth: AuthContext = Depends(get_current_super_admin),
):
    """Search teams by name; exact matches first, then shorter names. Superadmin only."""
    limit = min(limit, 100)
    query = supabase.table("teams").select("id, name, created_at, deleted_at")
    term = q.strip()
    if term:
        query = query.ilike("name", f"%{term}%")
    result = query.execute()

    teams = [team for team in result.data or [] if include_deleted or not team.get("deleted_at")]
    if term:
        teams.sort(key=lambda team: (team["name"] != term, len(team["name"]), team["name"]))
    else:
        teams.sort(key=lambda team: team["name"])
    return teams[:limit]


@router.get("/all", response_model=list[TeamResponse])
async def list_all_teams(
    deleted: bool = Query(False),
    auth: AuthContext = Depends(get_current_super_admin),
):
    """All active teams, or only soft-deleted ones (recycle bin). Superadmin only."""
    result = supabase.table("teams").select("id, name, created_at, deleted_at").order("name").execute()
    teams = [team for team in result.data or [] if bool(team.get("deleted_at")) == deleted]
    return [_team_with_counts(team) for team in teams]


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(team_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Get a team. Members of the active team, or any team for superadmins."""
    team = get_team_by_id(team_id, include_deleted=auth.is_superadmin)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    require_team_access_or_superadmin(auth, team_id, Access.VIEW)
    return _team_with_counts(team)


@router.post("/", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(data: TeamCreate, auth: AuthContext = Depends(get_current_auth)):
    """Create a team; the creator becomes its admin."""
    result = supabase.table("teams").insert({"name": data.name}).execute()
    team = result.data[0]

    try:
        supabase.table("team_users").insert({
            "team_id": team["id"],
            "user_id": auth.user_id,
            "role": TeamRole.ADMIN.value,
        }).execute()
    except Exception:
        # no transactions over PostgREST: undo the orphan team
        supabase.table("teams").delete().eq("id", team["id"]).execute()
        raise

    log_event("team_created", request_id=auth.request_id, team_id=team["id"], user_id=auth.user_id)
    return {**team, "role": TeamRole.ADMIN, "book_count": 0, "user_count": 1}


@router.put("/{team_id}", response_model=TeamResponse)
async def update_team(team_id: int, data: TeamUpdate, auth: AuthContext = Depends(get_current_auth)):
    """Rename a team. Team admin or superadmin."""
    team = get_team_by_id(team_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    require_team_access_or_superadmin(auth, team_id, Access.ADMIN)

    result = supabase.table("teams").update({"name": data.name}).eq("id", team_id).execute()
    return _team_with_counts(result.data[0])


@router.get("/{team_id}/users", response_model=list[TeamMemberResponse])
async def list_team_users(team_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Team roster, used by clients to derive permissions."""
    team = get_team_by_id(team_id, include_deleted=auth.is_superadmin)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    require_team_access_or_superadmin(auth, team_id, Access.VIEW)
    return get_team_users(team_id)


@router.post("/{team_id}/users", response_model=list[TeamMemberResponse], status_code=status.HTTP_201_CREATED)
async def add_team_user(team_id: int, data: TeamMemberCreate, auth: AuthContext = Depends(get_current_auth)):
    """Add a user to a team with a role. Team admin or superadmin."""
    _get_manageable_team(team_id, auth)

    user = supabase.table("users").select("id").eq("id", data.user_id).execute()
    if not user.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    existing = supabase.table("team_users").select("user_id").eq("team_id", team_id).eq(
        "user_id", data.user_id
    ).execute()
    if existing.data:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already in team")

    supabase.table("team_users").insert({
        "team_id": team_id,
        "user_id": data.user_id,
        "role": data.role.value,
    }).execute()
    log_event(
        "team_member_added",
        request_id=auth.request_id,
        team_id=team_id,
        user_id=data.user_id,
        role=data.role.value,
    )
    return get_team_users(team_id)


@router.put("/{team_id}/users/{user_id}", response_model=list[TeamMemberResponse])
async def update_team_user(
    team_id: int,
    user_id: int,
    data: TeamMemberUpdate,
    auth: AuthContext = Depends(get_current_auth),
):
    """
    Change a member's role. Team admin or superadmin.

    Takes effect on the member's next request: the auth gate reads the live
    role rather than the one in their token.
    """
    _get_manageable_team(team_id, auth)

    current = supabase.table("team_users").select("role").eq("team_id", team_id).eq("user_id", user_id).execute()
    if not current.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found in team")

    demoting_admin = current.data[0]["role"] == TeamRole.ADMIN.value and data.role is not TeamRole.ADMIN
    if demoting_admin and not auth.is_superadmin and count_team_admins(team_id) == 1:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cannot remove the last admin from the team")

    supabase.table("team_users").update({"role": data.role.value}).eq("team_id", team_id).eq(
        "user_id", user_id
    ).execute()
    log_event(
        "team_member_role_changed",
        request_id=auth.request_id,
        team_id=team_id,
        user_id=user_id,
        role=data.role.value,
    )
    return get_team_users(team_id)


@router.delete("/{team_id}/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_team_user(team_id: int, user_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Remove a member. Team admin or superadmin; the last admin stays."""
    _get_manageable_team(team_id, auth)

    current = supabase.table("team_users").select("role").eq("team_id", team_id).eq("user_id", user_id).execute()
    if not current.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found in team")

    if current.data[0]["role"] == TeamRole.ADMIN.value and not auth.is_superadmin:
        if count_team_admins(team_id) == 1:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot remove the last admin from the team",
            )

    supabase.table("team_users").delete().eq("team_id", team_id).eq("user_id", user_id).execute()
    log_event("team_member_removed", request_id=auth.request_id, team_id=team_id, user_id=user_id)
    return None


@router.delete("/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(team_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Soft delete a team. Team admin or superadmin."""
    team = get_team_by_id(team_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    require_team_access_or_superadmin(auth, team_id, Access.ADMIN)

    supabase.table("teams").update({
        "deleted_at": datetime.now(timezone.utc).isoformat()
    }).eq("id", team_id).is_("deleted_at", "null").execute()
    log_event("team_deleted", request_id=auth.request_id, team_id=team_id)
    return None


@router.post("/{team_id}/restore", response_model=TeamResponse)
async def restore_team(team_id: int, auth: AuthContext = Depends(get_current_super_admin)):
    """Restore a soft-deleted team. Superadmin only."""
    team = get_team_by_id(team_id, include_deleted=True)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    if not team.get("deleted_at"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Team is not deleted")

    result = supabase.table("teams").update({"deleted_at": None}).eq("id", team_id).execute()
    log_event("team_restored", request_id=auth.request_id, team_id=team_id)
    return _team_with_counts(result.data[0])


@router.delete("/{team_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
async def purge_team(team_id: int, auth: AuthContext = Depends(get_current_super_admin)):
    """Hard delete a team with its books, ledgers and memberships. Superadmin only."""
    team = get_team_by_id(team_id, include_deleted=True)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")

    books = supabase.table("books").select("id").eq("team_id", team_id).execute()
    for book in books.data or []:
        purge_book_data(book["id"])
    supabase.table("books").delete().eq("team_id", team_id).execute()
    supabase.table("team_users").delete().eq("team_id", team_id).execute()
    supabase.table("teams").delete().eq("id", team_id).execute()
    log_event("team_purged", request_id=auth.request_id, team_id=team_id, book_count=len(books.data or []))
    return None

