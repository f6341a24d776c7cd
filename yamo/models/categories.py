from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

CategoryType = Literal["expense", "income"]


class CategoryCreate(BaseModel):
    book_id: int
    name: str = Field(min_length=1)
    note: str | None = None
    type: CategoryType = "expense"
    parent_category_id: int | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    note: str | None = None
    type: CategoryType | None = None
    parent_category_id: int | None = None


class CategoryResponse(BaseModel):
    id: int
    book_id: int
    name: str
    note: str | None = None
    type: CategoryType = "expense"
    parent_category_id: int | None = None
    created_at: datetime | None = None
