"""Schemas shared by the listing and download endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ExportColumn(BaseModel):
    label: str = Field(min_length=1, max_length=100)
    field: str = Field(min_length=1, max_length=100)


class DownloadRequest(BaseModel):
    """Listing parameters plus the columns to write.

    ``query`` takes the same keys as the matching list endpoint, along with
    ``downloadAll`` and the endpoint's exclusion list.
    """

    query: dict[str, Any] = {}
    columns: list[ExportColumn] = Field(min_length=1, max_length=200)
    format: Literal["csv", "xlsx", "pdf"] = "csv"


class CatalogFieldInfo(BaseModel):
    key: str
    kind: str
    type: str
    match: str
    native_sort: bool
