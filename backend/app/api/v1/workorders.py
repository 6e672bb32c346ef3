"""Workorder listings, equipment history, details and downloads."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.common import (
    collect_query_params,
    describe_catalog,
    export_response,
    page_response,
)
from app.config import settings
from app.core.rate_limit import RateLimiter
from app.database import get_db
from app.schemas.listing import DownloadRequest
from app.services.listing import utcnow
from app.services.workorder import WORKORDER_CATALOG, WorkorderService

router = APIRouter(prefix="/workorders", tags=["workorders"])

_download_rate_limit = RateLimiter(
    max_calls=settings.EXPORT_RATE_LIMIT_CALLS,
    window_seconds=settings.EXPORT_RATE_LIMIT_WINDOW_SECONDS,
    key="download",
)


@router.get("", response_model=dict)
async def list_workorders(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    page = await WorkorderService(db).list_workorders(collect_query_params(request))
    return page_response(page)


@router.get("/history", response_model=dict)
async def workorder_history(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Workorders of one piece of equipment (``equipment_id``)."""
    page = await WorkorderService(db).list_history(collect_query_params(request))
    return page_response(page)


@router.get("/fields", response_model=dict)
async def workorder_fields():
    return {"success": True, "data": describe_catalog(WORKORDER_CATALOG)}


@router.post("/download")
async def download_workorders(
    data: DownloadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    _rl: None = Depends(_download_rate_limit),
):
    now = utcnow()
    records = await WorkorderService(db).download(
        data.query, [c.field for c in data.columns], now=now
    )
    return export_response(
        records, data.columns, data.format, title="Workorders", prefix="workorder_list", now=now
    )


@router.get("/{workorder_id}", response_model=dict)
async def get_workorder(
    workorder_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    record = await WorkorderService(db).get_workorder(workorder_id)
    return {"success": True, "data": dict(record)}
