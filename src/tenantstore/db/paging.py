# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Paged result shaping."""

import re
from typing import Any, Literal

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .search import format_search

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?")


class PagedData(BaseModel):
    """One page of records plus the total row count."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )

    sort: str = Field(default="", description="Sort column")
    search: str = Field(default="", description="Raw search text")
    direction: str = Field(default="", description="Sort direction")
    records: Any = Field(default=None, description="Records on this page")
    total: int = Field(default=0, ge=0, description="Total matching records")
    page_num: int = Field(default=1, alias="pageNum", description="Current page number")
    limit: int = Field(default=0, ge=0, description="Items per page")


@beartype
def new_paged_data(
    records: Any,
    order_by: str,
    direction: str,
    search: str,
    items_per_page: int,
    page_num: int,
    total: int,
) -> PagedData:
    """Wrap a page of records for the API layer."""
    return PagedData(
        records=records,
        sort=order_by,
        direction=direction,
        search=search,
        limit=items_per_page,
        page_num=page_num,
        total=total,
    )


class PagedQuery(BaseModel):
    """Incoming paging request: sort, direction, search, page size and number."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    sort: str = Field(default="id", description="Column to sort by")
    direction: Literal["asc", "desc"] = Field(default="asc")
    search: str = Field(default="", description="Raw user search text")
    limit: int = Field(default=50, ge=1, le=1000, description="Items per page")
    page_num: int = Field(default=1, ge=1, alias="pageNum", description="1-based page")

    @field_validator("direction", mode="before")
    @classmethod
    def normalise_direction(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("sort")
    @classmethod
    def validate_sort(cls, v: str) -> str:
        """Sort columns are spliced into SQL, so only plain identifiers pass."""
        if not _IDENTIFIER.fullmatch(v):
            raise ValueError(f"Invalid sort column: {v!r}")
        return v

    @property
    def offset(self) -> int:
        return (self.page_num - 1) * self.limit

    @property
    def search_query(self) -> str:
        """Full-text expression for ``to_tsquery``."""
        return format_search(self.search)

    def order_by(self) -> str:
        return f"ORDER BY {self.sort} {self.direction.upper()}"

    def result(self, records: Any, total: int) -> PagedData:
        return new_paged_data(
            records, self.sort, self.direction, self.search, self.limit, self.page_num, total
        )
