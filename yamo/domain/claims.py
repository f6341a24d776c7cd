from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Union

from yamo.domain.errors import DecodeFailure, TokenDecodeError
from yamo.domain.permissions import TeamRole, normalize_role

TOKEN_TYPE = "session"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity resolved from a credential."""
    user_id: int
    username: str
    is_superadmin: bool = False


@dataclass(frozen=True)
class NoTeam:
    """No team selected: pre-selection or superadmin dashboard state."""


@dataclass(frozen=True)
class TeamContext:
    """Active team selection as embedded in a session token."""
    team_id: int
    team_name: str
    role: TeamRole

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", normalize_role(self.role))

    def as_dict(self) -> dict[str, Any]:
        return {"id": self.team_id, "name": self.team_name, "role": self.role.value}


TeamClaim = Union[NoTeam, TeamContext]

NO_TEAM = NoTeam()


@dataclass(frozen=True)
class DecodedToken:
    principal: Principal
    claim: TeamClaim
    issued_at: datetime
    expires_at: datetime


def build_payload(principal: Principal, claim: TeamClaim) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "sub": str(principal.user_id),
        "username": principal.username,
        "superadmin": principal.is_superadmin,
        "type": TOKEN_TYPE,
    }
    if isinstance(claim, TeamContext):
        payload["team_id"] = claim.team_id
        payload["team_name"] = claim.team_name
        payload["team_role"] = claim.role.value
    return payload


def parse_payload(payload: dict[str, Any]) -> DecodedToken:
    """Rebuild principal and team claim from verified (or unverified) JWT claims."""
    if payload.get("type") != TOKEN_TYPE:
        raise TokenDecodeError(DecodeFailure.MALFORMED, "Unexpected token type")
    try:
        principal = Principal(
            user_id=int(payload["sub"]),
            username=str(payload["username"]),
            is_superadmin=bool(payload.get("superadmin", False)),
        )
        issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenDecodeError(DecodeFailure.MALFORMED, "Missing or invalid identity claims") from exc
    return DecodedToken(
        principal=principal,
        claim=_claim_from_payload(payload),
        issued_at=issued_at,
        expires_at=expires_at,
    )


def _claim_from_payload(payload: dict[str, Any]) -> TeamClaim:
    team_id = payload.get("team_id")
    role = payload.get("team_role")
    if team_id is None:
        if role is not None:
            raise TokenDecodeError(DecodeFailure.MALFORMED, "Team role without team")
        return NO_TEAM
    if role is None:
        raise TokenDecodeError(DecodeFailure.MALFORMED, "Team claim without role")
    try:
        return TeamContext(team_id=int(team_id), team_name=str(payload.get("team_name") or ""), role=role)
    except (TypeError, ValueError) as exc:
        raise TokenDecodeError(DecodeFailure.MALFORMED, "Invalid team claim") from exc
