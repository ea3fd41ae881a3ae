from __future__ import annotations

import copy
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.query.predicates import parse_where

Direction = Literal["asc", "desc"]
OrderBy = dict[str, Direction] | list[dict[str, Direction]]


class QueryDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    where: dict[str, Any] | None = None
    order_by: OrderBy | None = Field(default=None, alias="orderBy")
    include: dict[str, Any] | None = None
    select: dict[str, Any] | None = None
    skip: int | None = Field(default=None, ge=0, strict=True)
    take: int | None = Field(default=None, ge=0, strict=True)

    @field_validator("where")
    @classmethod
    def _where_must_parse(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        parse_where(value)
        return value

    @field_validator("include", "select")
    @classmethod
    def _tree_values(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        for key, item in (value or {}).items():
            if not isinstance(item, (bool, dict)):
                raise ValueError(f'"{key}" must be true, false or an object')
        return value

    def to_query(self) -> dict[str, Any]:
        query: dict[str, Any] = {}
        for key, value in (
            ("where", self.where),
            ("orderBy", self.order_by),
            ("include", self.include),
            ("select", self.select),
            ("skip", self.skip),
            ("take", self.take),
        ):
            if value is not None:
                query[key] = copy.deepcopy(value)
        return query


class PaginatedResponse(BaseModel):
    data: list[dict[str, Any]]
    count: int
    query: dict[str, Any]
