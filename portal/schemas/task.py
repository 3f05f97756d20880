from datetime import datetime
from pydantic import BaseModel, Field


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)


class CategoryOut(BaseModel):
    id: int
    name: str
    color: str

    class Config:
        from_attributes = True


class TaskIn(BaseModel):
    title: str = Field(..., min_length=1)
    description: str | None = None
    completed: bool = False
    category_id: int | None = Field(None, alias="categoryId")

    class Config:
        populate_by_name = True


class TaskUpdate(BaseModel):
    title: str | None = Field(None, min_length=1)
    description: str | None = None
    completed: bool | None = None
    category_id: int | None = Field(None, alias="categoryId")

    class Config:
        populate_by_name = True


class TaskOut(BaseModel):
    id: int
    title: str
    description: str | None = None
    completed: bool
    category_id: int | None = Field(None, serialization_alias="categoryId")
    created_at: datetime | None = Field(None, serialization_alias="createdAt")

    class Config:
        from_attributes = True
