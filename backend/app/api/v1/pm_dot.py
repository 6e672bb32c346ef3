"""PM schedule and DOT inspection listings."""

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
from app.services.pm_dot import DOT_CATALOG, PM_CATALOG, PmDotService

router = APIRouter(prefix="/pm-dot", tags=["pm-dot"])

_download_rate_limit = RateLimiter(
    max_calls=settings.EXPORT_RATE_LIMIT_CALLS,
    window_seconds=settings.EXPORT_RATE_LIMIT_WINDOW_SECONDS,
    key="download",
)


@router.get("/pm", response_model=dict)
async def list_pm_schedules(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    page = await PmDotService(db).list_pm_schedules(collect_query_params(request))
    return page_response(page)


@router.get("/dot", response_model=dict)
async def list_dot_inspections(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    page = await PmDotService(db).list_dot_inspections(collect_query_params(request))
    return page_response(page)


@router.get("/records", response_model=dict)
async def list_pm_dot_records(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """PM and DOT rows in one list; ``stats`` holds one block per record type."""
    page = await PmDotService(db).list_records(collect_query_params(request))
    return page_response(page)


@router.get("/fields", response_model=dict)
async def pm_dot_fields():
    return {
        "success": True,
        "data": {"pm": describe_catalog(PM_CATALOG), "dot": describe_catalog(DOT_CATALOG)},
    }


@router.post("/records/download")
async def download_pm_dot_records(
    data: DownloadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    _rl: None = Depends(_download_rate_limit),
):
    now = utcnow()
    page = await PmDotService(db).list_records(
        data.query, now=now, unbounded=True, fields=[c.field for c in data.columns]
    )
    return export_response(
        page.data, data.columns, data.format, title="PM & DOT", prefix="pm_dot_list", now=now
    )
