"""Fleet list view, equipment details and fleet downloads."""

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
from app.services.fleet import FLEET_CATALOG, FleetService
from app.services.listing import utcnow

router = APIRouter(prefix="/fleet", tags=["fleet"])

_download_rate_limit = RateLimiter(
    max_calls=settings.EXPORT_RATE_LIMIT_CALLS,
    window_seconds=settings.EXPORT_RATE_LIMIT_WINDOW_SECONDS,
    key="download",
)


@router.get("/list-view", response_model=dict)
async def fleet_list_view(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Paginated fleet list with fleet-wide statistics.

    Accepts ``account_ids``, ``sort``, ``page``, ``perPage``, ``filterBy`` and
    any catalog key as a filter.
    """
    page = await FleetService(db).list_view(collect_query_params(request))
    return page_response(page)


@router.get("/fields", response_model=dict)
async def fleet_fields():
    return {"success": True, "data": describe_catalog(FLEET_CATALOG)}


@router.get("/accounts/{account_id}/equipment/{equipment_id}", response_model=dict)
async def equipment_details(
    account_id: int,
    equipment_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    record = await FleetService(db).get_equipment_details(account_id, equipment_id)
    return {"success": True, "data": dict(record)}


@router.post("/list-view/download")
async def download_fleet_list(
    data: DownloadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    _rl: None = Depends(_download_rate_limit),
):
    """Export the filtered fleet list as CSV or PDF."""
    now = utcnow()
    records = await FleetService(db).download(
        data.query, [c.field for c in data.columns], now=now
    )
    return export_response(
        records, data.columns, data.format, title="Fleet List", prefix="fleet_list", now=now
    )
