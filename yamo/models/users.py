from datetime import datetime

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    superadmin: bool = False


class UserUpdate(BaseModel):
    username: str | None = Field(default=None, min_length=1)
    password: str | None = Field(default=None, min_length=1)
    superadmin: bool | None = None


class UserResponse(BaseModel):
    id: int
    username: str
    superadmin: bool = False
    created_at: datetime | None = None
