"""
Shared schema building blocks.

Responses use camelCase keys; requests accept either camelCase or snake_case.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    class Config:
        from_attributes = True
        populate_by_name = True
        alias_generator = to_camel


class UserSummary(CamelModel):
    """Safe user projection: never includes credentials."""
    id: int
    name: str
    email: str


class UserProfileSummary(UserSummary):
    profile_image: Optional[str] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit)
