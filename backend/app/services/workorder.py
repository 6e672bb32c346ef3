"""Workorder listings, history, details and downloads."""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestError, NotFoundError
from app.models import ServiceRequest, Workorder
from app.services.field_catalog import (
    FieldCatalog,
    Match,
    ProjectionContext,
    ValueType,
    native,
    normalize,
    virtual,
)
from app.services.listing import ListingEngine, ListingRequest, Page, Record, utcnow
from app.services.request_params import (
    build_request,
    parse_bool,
    parse_id_list,
    wants_everything,
)

logger = logging.getLogger(__name__)

DATE = ValueType.DATE
NUMBER = ValueType.NUMBER

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_priority_range(start: datetime, end: datetime) -> str:
    """``Jan 15 – Jan 20, 2024``; the year comes from the start date."""
    return (
        f"{_MONTHS[start.month - 1]} {start.day} – "
        f"{_MONTHS[end.month - 1]} {end.day}, {start.year}"
    )


def _priority_range(row: Workorder, context: ProjectionContext) -> str:
    start = normalize(row.workorder_start_date) or context.now
    end = normalize(row.workorder_end_date) or context.now
    return format_priority_range(start, end)


def _account_label(row: Workorder, context: ProjectionContext) -> str | None:
    account = row.service_request.account if row.service_request else None
    if account is None:
        return None
    return f"{account.account_name} ({account.account_number})"


def _invoice_numbers(row: Workorder, context: ProjectionContext) -> list[str]:
    return [i.invoice_number for i in row.invoices if i.invoice_number]


def _vmrs_codes(row: Workorder, context: ProjectionContext) -> list[str]:
    return [link.vmrs.vmrs_code for link in row.vmrs_codes if link.vmrs is not None]


WORKORDER_CATALOG = FieldCatalog(
    "workorder",
    Workorder,
    [
        native("workorder_id", "workorder_id", value_type=NUMBER),
        native("workorder_ref_id", "workorder_ref_id"),
        native("workorder_status", "workorder_status", match=Match.EQUALS),
        native("technician_name", "technician_name"),
        native("service_request_id", "service_request_id", value_type=NUMBER),
        native("assigned_date", "workorder_assigned_date", value_type=DATE),
        native("workorder_eta", "workorder_eta", value_type=DATE),
        native("workorder_start_date", "workorder_start_date", value_type=DATE),
        native("workorder_end_date", "workorder_end_date", value_type=DATE),
        native("created_at", "created_at", value_type=DATE),
        native("created_from", filter_paths=["created_at"], value_type=DATE, match=Match.DAY_FROM),
        native("created_to", filter_paths=["created_at"], value_type=DATE, match=Match.DAY_TO),
        native(
            "priority_start",
            filter_paths=["workorder_start_date"],
            value_type=DATE,
            match=Match.DAY_FROM,
        ),
        native(
            "priority_end",
            filter_paths=["workorder_end_date"],
            value_type=DATE,
            match=Match.DAY_TO,
        ),
        native(
            "priority_range",
            filter_paths=["workorder_start_date", "workorder_end_date"],
            match=Match.DATE_WINDOW,
            extract=_priority_range,
        ),
        native("equipment_id", "service_request.equipment_id", value_type=NUMBER),
        native("account_id", "service_request.account_id", value_type=NUMBER),
        native("unit_number", "service_request.equipment.unit_number"),
        native("customer_unit_number", "service_request.equipment.customer_unit_number"),
        native("account_number", "service_request.account.account_number"),
        native("account_name", "service_request.account.account_name"),
        native(
            "account",
            filter_paths=[
                "service_request.account.account_number",
                "service_request.account.account_name",
            ],
            extract=_account_label,
            requires=["service_request.account"],
        ),
        native("customer_po", "service_request.account.customer.customer_po"),
        native("invoice_number", "invoices.invoice_number"),
        native("invoice_date", "invoices.date", value_type=DATE),
        native("invoice_total_amount", "invoices.total_amount", value_type=NUMBER),
        virtual("invoiceNumbers", _invoice_numbers, requires=["invoices"]),
        native("vmrs_code", filter_paths=["vmrs_codes.vmrs.vmrs_code"]),
        virtual("vmrsCodes", _vmrs_codes, requires=["vmrs_codes.vmrs"]),
    ],
    default_sort="workorder_id",
)

_RESERVED = ("account_ids", "downloadAll", "excluded_workorder_ids")


def _account_scope(account_ids: Sequence[int]):
    return Workorder.service_request.has(ServiceRequest.account_id.in_(account_ids))


class WorkorderService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.engine = ListingEngine(db, WORKORDER_CATALOG)

    async def list_workorders(
        self, params: Mapping[str, Any], *, now: datetime | None = None
    ) -> Page:
        account_ids = parse_id_list(params.get("account_ids"))
        if not account_ids:
            raise BadRequestError("account_ids must be provided")
        return await self.engine.run(
            build_request(params, reserved=_RESERVED),
            scope=[_account_scope(account_ids)],
            now=now,
        )

    async def list_history(
        self, params: Mapping[str, Any], *, now: datetime | None = None
    ) -> Page:
        """Every workorder raised for one piece of equipment, across accounts."""
        equipment_ids = parse_id_list(params.get("equipment_id"))
        if not equipment_ids:
            raise BadRequestError("equipment_id must be provided")
        request = build_request(params, reserved=(*_RESERVED, "equipment_id"))
        return await self.engine.run(
            request,
            scope=[Workorder.service_request.has(ServiceRequest.equipment_id.in_(equipment_ids))],
            now=now,
        )

    async def get_workorder(self, workorder_id: int, *, now: datetime | None = None) -> Record:
        collected = await self.engine.collect(
            ListingRequest(),
            scope=[Workorder.workorder_id == workorder_id],
            now=now or utcnow(),
        )
        if not collected.records:
            raise NotFoundError(f"Workorder {workorder_id} not found")
        return collected.records[0]

    async def download(
        self,
        params: Mapping[str, Any],
        fields: Sequence[str] | None = None,
        *,
        now: datetime | None = None,
    ) -> list[Record]:
        """Workorders for export; ``excluded_workorder_ids`` drops deselected rows."""
        download_all = parse_bool(params.get("downloadAll", False))
        scope = []
        if wants_everything(params.get("account_ids")):
            if not download_all:
                raise BadRequestError("Please provide specific account_ids when 'all' is selected")
        else:
            account_ids = parse_id_list(params.get("account_ids"))
            if not account_ids:
                raise BadRequestError("account_ids must be provided")
            scope.append(_account_scope(account_ids))
        excluded = parse_id_list(params.get("excluded_workorder_ids"))
        if excluded and not download_all:
            scope.append(Workorder.workorder_id.not_in(excluded))

        request = build_request(params, reserved=_RESERVED, unbounded=True, fields=fields)
        page = await self.engine.run(request, scope=scope, now=now)
        logger.info("Workorder download produced %d rows", page.total)
        return page.data


