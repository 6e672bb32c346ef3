"""Shared schema utilities."""

from pydantic import BaseModel


class PaginationMeta(BaseModel):
    """Page window of a listing; ``total`` counts the fully filtered set."""
    page: int
    per_page: int
    total: int
    total_pages: int
