import logging

from fastapi import Depends, Header, HTTPException, Request, status

from yamo.auth.context import AuthContext
from yamo.auth.jwt import decode_access_token
from yamo.db import supabase
from yamo.domain.claims import Principal, TeamContext
from yamo.domain.errors import ErrorKind, TokenDecodeError, error_http_status
from yamo.domain.permissions import Access, is_stale_claim
from yamo.domain.teams import get_user_role
from yamo.observability import incr_metric, log_event

_ACCESS_DENIED_MESSAGES: dict[Access, str] = {
    Access.VIEW: "Access denied to this team",
    Access.WRITE: "Write access required for this operation",
    Access.ADMIN: "Admin privileges required for this operation",
}


def _extract_bearer_token(authorization: str | None) -> str | None:
    """Extract token from 'Bearer <token>' header."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def _get_current_user_record(user_id: int, username: str) -> dict | None:
    """Load the user only if the id+username pair from the token still matches."""
    result = supabase.table("users").select(
        "id, username, superadmin"
    ).eq("id", user_id).eq("username", username).execute()
    if not result.data:
        return None
    return result.data[0]


def _reject(request: Request, kind: ErrorKind, detail: str, reason: str) -> HTTPException:
    request_id = getattr(request.state, "request_id", None)
    incr_metric("auth.rejected", kind=kind.value, reason=reason)
    log_event(
        "auth_rejected",
        level=logging.WARNING,
        request_id=request_id,
        kind=kind.value,
        reason=reason,
        path=request.url.path,
    )
    return HTTPException(status_code=error_http_status(kind), detail=detail)


async def get_current_auth(request: Request, authorization: str | None = Header(None)) -> AuthContext:
    """
    Auth gate for every route outside the login/health allow-list.

    Missing credential is 401; an undecodable, expired, or stale-user token is 403.
    """
    token = _extract_bearer_token(authorization)
    if not token:
        raise _reject(request, ErrorKind.UNAUTHENTICATED, "Authentication token required", "missing_token")

    try:
        decoded = decode_access_token(token)
    except TokenDecodeError as exc:
        raise _reject(request, ErrorKind.INVALID_CREDENTIAL, "Invalid token", exc.reason.value)

    # Renamed or deleted users must not keep using old tokens
    user = _get_current_user_record(decoded.principal.user_id, decoded.principal.username)
    if not user:
        raise _reject(request, ErrorKind.INVALID_CREDENTIAL, "Invalid user", "stale_user")

    principal = Principal(
        user_id=user["id"],
        username=user["username"],
        is_superadmin=bool(user.get("superadmin")),
    )
    live_role = None
    if isinstance(decoded.claim, TeamContext):
        live_role = get_user_role(decoded.claim.team_id, principal.user_id)
        roster = {} if live_role is None else {principal.user_id: live_role}
        if is_stale_claim(principal, decoded.claim, roster):
            incr_metric("auth.stale_claim")
            log_event(
                "stale_team_claim",
                request_id=getattr(request.state, "request_id", None),
                user_id=principal.user_id,
                team_id=decoded.claim.team_id,
                claimed_role=decoded.claim.role.value,
                live_role=live_role.value if live_role else None,
            )

    return AuthContext(
        principal=principal,
        claim=decoded.claim,
        live_role=live_role,
        request_id=getattr(request.state, "request_id", None),
    )


async def get_current_super_admin(auth: AuthContext = Depends(get_current_auth)) -> AuthContext:
    """Authorization dependency for superadmin-only (admin surface) endpoints."""
    if not auth.admin_permission.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superadmin privileges required",
        )
    return auth


def require_team_access(auth: AuthContext, team_id: int, access: Access) -> None:
    """
    Enforce a team-surface permission for a resource owned by ``team_id``.

    The active team claim must name the same team; the role comes from the
    live membership row, not from the token.
    """
    if auth.team_id != team_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_ACCESS_DENIED_MESSAGES[Access.VIEW],
        )
    if not auth.permission.allows(access):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_ACCESS_DENIED_MESSAGES[access] if auth.permission.can_view else _ACCESS_DENIED_MESSAGES[Access.VIEW],
        )


def require_team_access_or_superadmin(auth: AuthContext, team_id: int, access: Access) -> None:
    """Team management routes: superadmins bypass team roles, everyone else needs them."""
    if auth.is_superadmin:
        return
    require_team_access(auth, team_id, access)

