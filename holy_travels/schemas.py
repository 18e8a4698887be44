from decimal import Decimal
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

# Amounts are Decimal internally and plain JSON numbers on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

T = TypeVar("T")

class CamelModel(BaseModel):
    """Base for API payloads: camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

class Pagination(CamelModel):
    total: int
    page: int
    pages: int

    @classmethod
    def build(cls, total: int, skip: int, limit: int) -> "Pagination":
        return cls(
            total=total,
            page=(skip // limit) + 1,
            pages=(total + limit - 1) // limit
        )

class ApiResponse(CamelModel, Generic[T]):
    """Success envelope shared by every endpoint"""
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
