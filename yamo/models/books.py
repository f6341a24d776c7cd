from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BookCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_id: int = Field(alias="teamId")
    name: str = Field(min_length=1)
    note: str | None = None


class BookUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    note: str | None = None


class BookResponse(BaseModel):
    id: int
    team_id: int
    name: str
    note: str | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None
