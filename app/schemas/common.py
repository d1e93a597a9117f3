"""
Shared schema building blocks.

The JSON surface uses camelCase field names (maskedCardNumber,
totalElements, ...) while Python code keeps snake_case. ApiModel wires the
alias generator once; FastAPI serializes responses by alias, and request
bodies are accepted under either name.
"""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.repositories.base import Page

ItemT = TypeVar("ItemT", bound=BaseModel)


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PageResponse(ApiModel, Generic[ItemT]):
    """One page of results: {content, page, size, totalElements, totalPages, last}."""
    content: list[ItemT]
    page: int
    size: int
    total_elements: int
    total_pages: int
    last: bool

    @classmethod
    def build(cls, page: Page, item_model: type[ItemT]) -> "PageResponse[ItemT]":
        total_pages = -(-page.total // page.size) if page.size else 0
        return cls(
            content=[item_model.model_validate(item) for item in page.items],
            page=page.page,
            size=page.size,
            total_elements=page.total,
            total_pages=total_pages,
            last=page.page + 1 >= total_pages,
        )


class ErrorResponse(ApiModel):
    """Body of every error response (see app.exceptions)."""
    timestamp: datetime
    status: int
    error: str
    message: str


class MessageResponse(ApiModel):
    timestamp: datetime
    status: int
    message: str
