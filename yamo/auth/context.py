from __future__ import annotations

from dataclasses import dataclass, field

from yamo.domain.claims import NO_TEAM, Principal, TeamClaim, TeamContext
from yamo.domain.permissions import EffectivePermission, Surface, TeamRole, evaluate


@dataclass
class AuthContext:
    """Identity context for authenticated requests.

    ``live_role`` is the caller's current ``team_users`` role in the claimed
    team, read by the auth gate on every request.
    """
    principal: Principal
    claim: TeamClaim = NO_TEAM
    live_role: TeamRole | None = None
    request_id: str | None = None
    permission: EffectivePermission = field(init=False)

    def __post_init__(self) -> None:
        roster = None
        if isinstance(self.claim, TeamContext):
            roster = {} if self.live_role is None else {self.principal.user_id: self.live_role}
        self.permission = evaluate(self.principal, self.claim, roster)

    @property
    def user_id(self) -> int:
        return self.principal.user_id

    @property
    def username(self) -> str:
        return self.principal.username

    @property
    def is_superadmin(self) -> bool:
        return self.principal.is_superadmin

    @property
    def team_id(self) -> int | None:
        if isinstance(self.claim, TeamContext):
            return self.claim.team_id
        return None

    @property
    def admin_permission(self) -> EffectivePermission:
        return evaluate(self.principal, self.claim, surface=Surface.ADMIN)
