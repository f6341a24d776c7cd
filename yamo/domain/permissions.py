from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final, Mapping

if TYPE_CHECKING:
    from yamo.domain.claims import Principal, TeamClaim


class TeamRole(str, Enum):
    ADMIN = "admin"
    COLLABORATOR = "collaborator"
    VIEWER = "viewer"


class Surface(str, Enum):
    """Kind of route a permission decision is made for."""
    TEAM = "team"
    ADMIN = "admin"


class Access(str, Enum):
    VIEW = "view"
    WRITE = "write"
    ADMIN = "admin"


@dataclass(frozen=True)
class EffectivePermission:
    is_admin: bool = False
    can_write: bool = False
    can_view: bool = False

    def as_dict(self) -> dict[str, bool]:
        return {"isAdmin": self.is_admin, "canWrite": self.can_write, "canView": self.can_view}

    def allows(self, access: Access) -> bool:
        if access is Access.ADMIN:
            return self.is_admin
        if access is Access.WRITE:
            return self.can_write
        return self.can_view


FULL: Final[EffectivePermission] = EffectivePermission(True, True, True)
NONE: Final[EffectivePermission] = EffectivePermission(False, False, False)

ROLE_PERMISSIONS: Final[dict[TeamRole, EffectivePermission]] = {
    TeamRole.ADMIN: FULL,
    TeamRole.COLLABORATOR: EffectivePermission(is_admin=False, can_write=True, can_view=True),
    TeamRole.VIEWER: EffectivePermission(is_admin=False, can_write=False, can_view=True),
}

CANONICAL_ROLES: Final[frozenset[str]] = frozenset(role.value for role in TeamRole)


def normalize_role(role: str | TeamRole) -> TeamRole:
    if isinstance(role, TeamRole):
        return role
    raw = (role or "").strip().lower()
    if raw not in CANONICAL_ROLES:
        raise ValueError(f"Unsupported role: {role}")
    return TeamRole(raw)


def permissions_for_role(role: str | TeamRole | None) -> EffectivePermission:
    if role is None:
        return NONE
    return ROLE_PERMISSIONS[normalize_role(role)]


def evaluate(
    principal: Principal | None,
    claim: TeamClaim | None,
    roster: Mapping[int, TeamRole | str] | None = None,
    *,
    surface: Surface = Surface.TEAM,
) -> EffectivePermission:
    """Compute ``{isAdmin, canWrite, canView}`` for the active context.

    ``roster`` is the live membership lookup for the claimed team, keyed by
    user id. When it is ``None`` the lookup is unavailable and the role carried
    by the claim is trusted instead; callers passing ``None`` must say why.
    Superadmins get everything on admin surfaces and nothing implicit on team
    surfaces.
    """
    if principal is None:
        return NONE

    if surface is Surface.ADMIN:
        return FULL if principal.is_superadmin else NONE

    team_id = getattr(claim, "team_id", None)
    if team_id is None:
        return NONE

    if roster is None:
        return permissions_for_role(getattr(claim, "role", None))

    # the live lookup wins over a stale claim
    return permissions_for_role(roster.get(principal.user_id))


def is_stale_claim(
    principal: Principal,
    claim: TeamClaim,
    roster: Mapping[int, TeamRole | str],
) -> bool:
    """True when the role in ``claim`` no longer matches the live roster."""
    claimed = getattr(claim, "role", None)
    if claimed is None:
        return False
    live = roster.get(principal.user_id)
    return live is None or normalize_role(live) is not normalize_role(claimed)
