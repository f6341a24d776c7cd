from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from yamo.domain.permissions import TeamRole


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SessionUser(BaseModel):
    id: int
    username: str
    superadmin: bool = False
    created_at: datetime | None = None


class LoginResponse(BaseModel):
    token: str
    user: SessionUser


class TeamClaimResponse(BaseModel):
    id: int
    name: str
    role: TeamRole


class SelectTeamRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_id: int = Field(alias="teamId")


class SelectTeamResponse(BaseModel):
    token: str
    team: TeamClaimResponse


class TokenResponse(BaseModel):
    token: str


class PermissionResponse(BaseModel):
    isAdmin: bool
    canWrite: bool
    canView: bool


class MeResponse(BaseModel):
    id: int
    username: str
    superadmin: bool
    team: TeamClaimResponse | None = None
    permissions: PermissionResponse
