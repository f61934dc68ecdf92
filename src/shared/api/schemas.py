"""
Shared API Schemas
==================

Base pydantic model for the public JSON API. Fields are snake_case in
Python and camelCase on the wire.
"""

from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base model with camelCase aliases, populated by name or alias."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Page(ApiModel, Generic[T]):
    """A page of results."""
    total: int
    items: List[T]
    page: int
    page_size: int
