from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from yamo.domain.permissions import TeamRole, normalize_role


class TeamCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Team name is required")
        return value


class TeamUpdate(TeamCreate):
    pass


class TeamResponse(BaseModel):
    id: int
    name: str
    created_at: datetime | None = None
    deleted_at: datetime | None = None
    role: TeamRole | None = None
    book_count: int | None = None
    user_count: int | None = None


class TeamMemberCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId")
    role: TeamRole

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: str) -> TeamRole:
        return normalize_role(value)


class TeamMemberUpdate(BaseModel):
    role: TeamRole

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: str) -> TeamRole:
        return normalize_role(value)


class TeamMemberResponse(BaseModel):
    id: int
    username: str
    role: TeamRole
    created_at: datetime | None = None
