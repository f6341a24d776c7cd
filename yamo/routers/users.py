import logging

import bcrypt as bcrypt_lib
from fastapi import APIRouter, Depends, HTTPException, status

from yamo.auth import AuthContext, create_access_token, get_current_auth, get_current_super_admin
from yamo.db import supabase
from yamo.domain.claims import NO_TEAM, Principal, TeamContext
from yamo.domain.teams import get_team_by_id, get_user_role, list_user_teams
from yamo.models.auth import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    SelectTeamRequest,
    SelectTeamResponse,
    SessionUser,
    TokenResponse,
)
from yamo.models.teams import TeamResponse
from yamo.models.users import UserCreate, UserResponse, UserUpdate
from yamo.observability import incr_metric, log_event

router = APIRouter(prefix="/api/users", tags=["users"])


def hash_password(password: str) -> str:
    """Hash password using bcrypt."""
    return bcrypt_lib.hashpw(password.encode(), bcrypt_lib.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against hash."""
    return bcrypt_lib.checkpw(password.encode(), password_hash.encode())


def _user_response(user: dict) -> UserResponse:
    return UserResponse(
        id=user["id"],
        username=user["username"],
        superadmin=bool(user.get("superadmin")),
        created_at=user.get("created_at"),
    )


@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest):
    """Login with username and password, returns a token without team claim."""
    result = supabase.table("users").select(
        "id, username, password_hash, superadmin, created_at"
    ).eq("username", data.username).execute()

    if not result.data:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    user = result.data[0]
    if not verify_password(data.password, user["password_hash"]):
        incr_metric("auth.login_failed")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    principal = Principal(
        user_id=user["id"],
        username=user["username"],
        is_superadmin=bool(user.get("superadmin")),
    )
    token = create_access_token(principal)
    log_event("user_logged_in", user_id=principal.user_id)

    return LoginResponse(
        token=token,
        user=SessionUser(
            id=user["id"],
            username=user["username"],
            superadmin=principal.is_superadmin,
            created_at=user.get("created_at"),
        ),
    )


@router.get("/me", response_model=MeResponse)
async def get_me(auth: AuthContext = Depends(get_current_auth)):
    """Current principal, the active team (with its live role) and derived permissions."""
    team = None
    if isinstance(auth.claim, TeamContext) and auth.live_role is not None:
        team = {"id": auth.claim.team_id, "name": auth.claim.team_name, "role": auth.live_role}
    return MeResponse(
        id=auth.user_id,
        username=auth.username,
        superadmin=auth.is_superadmin,
        team=team,
        permissions=auth.permission.as_dict(),
    )


@router.get("/me/teams", response_model=list[TeamResponse])
async def list_my_teams(auth: AuthContext = Depends(get_current_auth)):
    """Teams the caller is a member of, with the role held in each."""
    return list_user_teams(auth.user_id)


@router.post("/select-team", response_model=SelectTeamResponse)
async def select_team(data: SelectTeamRequest, auth: AuthContext = Depends(get_current_auth)):
    """Re-validate membership and re-issue the token with the team claim."""
    team = get_team_by_id(data.team_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")

    role = get_user_role(data.team_id, auth.user_id)
    if role is None:
        log_event(
            "team_selection_denied",
            level=logging.WARNING,
            request_id=auth.request_id,
            user_id=auth.user_id,
            team_id=data.team_id,
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this team")

    claim = TeamContext(team_id=team["id"], team_name=team["name"], role=role)
    token = create_access_token(auth.principal, claim)
    incr_metric("context.team_selected", role=role.value)
    log_event(
        "team_selected",
        request_id=auth.request_id,
        user_id=auth.user_id,
        team_id=claim.team_id,
        role=role.value,
    )
    return SelectTeamResponse(token=token, team=claim.as_dict())


@router.post("/exit-team", response_model=TokenResponse)
async def exit_team(auth: AuthContext = Depends(get_current_auth)):
    """Re-issue the token without a team claim."""
    log_event("team_exited", request_id=auth.request_id, user_id=auth.user_id, team_id=auth.team_id)
    return TokenResponse(token=create_access_token(auth.principal, NO_TEAM))


@router.get("/", response_model=list[UserResponse])
async def list_users(auth: AuthContext = Depends(get_current_super_admin)):
    """List all users. Superadmin only."""
    result = supabase.table("users").select("id, username, superadmin, created_at").order("username").execute()
    return [_user_response(user) for user in result.data or []]


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(data: UserCreate, auth: AuthContext = Depends(get_current_super_admin)):
    """Create a new user. Superadmin only."""
    existing = supabase.table("users").select("id").eq("username", data.username).execute()
    if existing.data:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    result = supabase.table("users").insert({
        "username": data.username,
        "password_hash": hash_password(data.password),
        "superadmin": data.superadmin,
    }).execute()
    return _user_response(result.data[0])


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, auth: AuthContext = Depends(get_current_auth)):
    """Get a user by ID. Self or superadmin."""
    if auth.user_id != user_id and not auth.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: You can only view your own user information",
        )

    result = supabase.table("users").select("id, username, superadmin, created_at").eq("id", user_id).execute()
    if not result.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return _user_response(result.data[0])


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, data: UserUpdate, auth: AuthContext = Depends(get_current_auth)):
    """
    Update a user. Self or superadmin; only superadmins change the superadmin flag.

    A rename invalidates the user's outstanding tokens at the auth gate.
    """
    existing = supabase.table("users").select("id").eq("id", user_id).execute()
    if not existing.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if data.superadmin is not None and not auth.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can change admin privileges",
        )
    if auth.user_id != user_id and not auth.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update your own user information",
        )

    update_data = data.model_dump(exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    if "username" in update_data:
        duplicate = supabase.table("users").select("id").eq("username", update_data["username"]).neq(
            "id", user_id
        ).execute()
        if duplicate.data:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    if "password" in update_data:
        update_data["password_hash"] = hash_password(update_data.pop("password"))

    result = supabase.table("users").update(update_data).eq("id", user_id).execute()
    if not result.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return _user_response(result.data[0])


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: int, auth: AuthContext = Depends(get_current_super_admin)):
    """Delete a user and their memberships. Superadmin only."""
    existing = supabase.table("users").select("id").eq("id", user_id).execute()
    if not existing.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if auth.user_id == user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")

    supabase.table("team_users").delete().eq("user_id", user_id).execute()
    supabase.table("users").delete().eq("id", user_id).execute()
    return None
