"""Preventive maintenance schedules, DOT inspections and their combined listing."""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestError, UpstreamFailure
from app.models import (
    DotInspection,
    PreventiveMaintenanceEvent,
    PreventiveMaintenanceSchedule,
    ServiceRequest,
    Workorder,
)
from app.models.enums import FAILED_INSPECTION_RESULTS, PmEventStatus, RecordType
from app.services.field_catalog import (
    FieldCatalog,
    Match,
    ProjectionContext,
    ValueType,
    native,
    normalize,
    virtual,
)
from app.services.listing import (
    ListingEngine,
    Page,
    Record,
    clamp_page,
    paginate,
    parse_sort,
    sort_records,
    utcnow,
)
from app.services.request_params import build_request, parse_id_list
from app.services.statistics import QueryBucket, StatisticsAggregator, counts

logger = logging.getLogger(__name__)

DATE = ValueType.DATE
NUMBER = ValueType.NUMBER

LATEST_SERVICE = "latest_service"


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


# ── PM schedules ──────────────────────────────────────────────────────


def _event(row: PreventiveMaintenanceSchedule, status: PmEventStatus, *, last: bool):
    matching = [e for e in row.events if (e.status or "").upper() == status.value]
    if not matching:
        return None
    return matching[-1] if last else matching[0]


def _last_completed(row, context):
    return _event(row, PmEventStatus.COMPLETED, last=False)


def _next_scheduled(row, context):
    return _event(row, PmEventStatus.SCHEDULED, last=True)


def _event_field(pick, attribute: str):
    def extract(row, context: ProjectionContext):
        event = pick(row, context)
        return normalize(getattr(event, attribute)) if event is not None else None
    return extract


def _latest_service(attribute: str):
    def extract(row: PreventiveMaintenanceSchedule, context: ProjectionContext):
        latest = context.lookups.get(LATEST_SERVICE, {}).get(row.equipment_id)
        return latest.get(attribute) if latest else None
    return extract


def _record_type(kind: RecordType):
    return lambda row, context: kind.value


PM_CATALOG = FieldCatalog(
    "pm",
    PreventiveMaintenanceSchedule,
    [
        native("pm_schedule_id", "pm_schedule_id", value_type=NUMBER),
        native("account_id", "account_id", value_type=NUMBER),
        native("account_name", "account.account_name"),
        native("account_number", "account.account_number"),
        native("equipment_id", "equipment_id", value_type=NUMBER),
        native("unit_number", "equipment.unit_number"),
        native("equipment_type", "equipment.equipment_type_lookup.equipment_type"),
        native(
            "equipment",
            filter_paths=["equipment.unit_number", "equipment.equipment_type_lookup.equipment_type"],
        ),
        native("account", filter_paths=["account.account_number", "account.account_name"]),
        native("pm_task_description", "pm_task_description"),
        native("frequency_interval", "frequency_interval", value_type=NUMBER),
        native("frequency_type", "frequency_type", match=Match.EQUALS),
        native("type", "type"),
        native("status", "status", ignore=("All",)),
        native("facility_code", "facility.facility_code"),
        native("facility_name", "facility.facility_name"),
        virtual(
            "lastEvent_performed_date",
            _event_field(_last_completed, "performed_date"),
            requires=["events"],
            value_type=DATE,
        ),
        virtual("lastEvent_status", _event_field(_last_completed, "status"), requires=["events"]),
        virtual(
            "lastEvent_pm_event_id",
            _event_field(_last_completed, "pm_event_id"),
            requires=["events"],
            value_type=NUMBER,
        ),
        virtual(
            "nextEvent_next_due_date",
            _event_field(_next_scheduled, "next_due_date"),
            requires=["events"],
            value_type=DATE,
        ),
        virtual("nextEvent_status", _event_field(_next_scheduled, "status"), requires=["events"]),
        virtual(
            "nextEvent_pm_event_id",
            _event_field(_next_scheduled, "pm_event_id"),
            requires=["events"],
            value_type=NUMBER,
        ),
        virtual("service_request_id", _latest_service("service_request_id"), value_type=NUMBER),
        virtual("workorder_id", _latest_service("workorder_id"), value_type=NUMBER),
        virtual("workorder_ref_id", _latest_service("workorder_ref_id")),
        virtual("recordType", _record_type(RecordType.PM), match=Match.EQUALS),
    ],
    default_sort="pm_schedule_id",
)


async def latest_service_by_equipment(
    db: AsyncSession, rows: Sequence[PreventiveMaintenanceSchedule]
) -> Mapping[str, Mapping]:
    """Latest service request and its latest workorder for each equipment in one query."""
    equipment_ids = sorted({r.equipment_id for r in rows if r.equipment_id is not None})
    if not equipment_ids:
        return {LATEST_SERVICE: {}}
    newest = (
        select(ServiceRequest.equipment_id, func.max(ServiceRequest.service_request_id).label("sr_id"))
        .where(ServiceRequest.equipment_id.in_(equipment_ids))
        .group_by(ServiceRequest.equipment_id)
        .subquery()
    )
    stmt = (
        select(
            newest.c.equipment_id,
            newest.c.sr_id,
            Workorder.workorder_id,
            Workorder.workorder_ref_id,
        )
        .select_from(newest)
        .outerjoin(Workorder, Workorder.service_request_id == newest.c.sr_id)
        .order_by(newest.c.equipment_id, Workorder.workorder_id)
    )
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as exc:
        logger.error("Latest service lookup failed", exc_info=True)
        raise UpstreamFailure("latest_service_lookup") from exc
    latest: dict[int, dict] = {}
    for equipment_id, sr_id, workorder_id, workorder_ref_id in result.all():
        # Rows are ordered by workorder id, so the last one per equipment wins.
        latest[equipment_id] = {
            "service_request_id": sr_id,
            "workorder_id": workorder_id,
            "workorder_ref_id": workorder_ref_id,
        }
    return {LATEST_SERVICE: latest}


def _pm_ids(ids: Sequence[int], now: datetime, *conditions):
    return (
        select(PreventiveMaintenanceEvent.pm_schedule_id)
        .where(PreventiveMaintenanceEvent.pm_schedule_id.in_(ids), *conditions)
        .distinct()
    )


def _coming_due(ids, now):
    return _pm_ids(
        ids,
        now,
        PreventiveMaintenanceEvent.status == PmEventStatus.SCHEDULED.value,
        PreventiveMaintenanceEvent.next_due_date <= start_of_day(now),
    )


def _overdue(ids, now):
    return _pm_ids(
        ids,
        now,
        PreventiveMaintenanceEvent.status == PmEventStatus.SCHEDULED.value,
        PreventiveMaintenanceEvent.next_due_date < start_of_day(now),
    )


def _recently_completed(ids, now):
    return _pm_ids(
        ids,
        now,
        PreventiveMaintenanceEvent.status == PmEventStatus.COMPLETED.value,
        PreventiveMaintenanceEvent.performed_date >= start_of_day(now) - timedelta(days=30),
    )


PM_STATISTICS = StatisticsAggregator(
    "pm_schedule_id",
    [
        QueryBucket("unitsComingDue", _coming_due),
        QueryBucket("unitsOverdue", _overdue),
        QueryBucket("unitsRecentlyCompleted", _recently_completed),
    ],
    total="totalUnits",
)


# ── DOT inspections ───────────────────────────────────────────────────


def _violations(row: DotInspection, context: ProjectionContext) -> list[dict]:
    return [
        {
            "violation_code": v.violation_code,
            "description": v.description,
            "severity_level": v.severity_level,
            "corrective_action_taken": v.corrective_action_taken,
        }
        for v in row.violations
    ]


DOT_CATALOG = FieldCatalog(
    "dot",
    DotInspection,
    [
        native("dot_inspection_id", "dot_inspection_id", value_type=NUMBER),
        native("account_id", "account_id", value_type=NUMBER),
        native("account_name", "account.account_name"),
        native("account_number", "account.account_number"),
        native("equipment_id", "equipment_id", value_type=NUMBER),
        native("schedule_agreement_id", "schedule_agreement_id", value_type=NUMBER),
        native("unit_number", "equipment.unit_number"),
        native("equipment_type", "equipment.equipment_type_lookup.equipment_type"),
        native(
            "equipment",
            filter_paths=["equipment.unit_number", "equipment.equipment_type_lookup.equipment_type"],
        ),
        native("account", filter_paths=["account.account_number", "account.account_name"]),
        native("inspection_date", "inspection_date", value_type=DATE),
        native("inspector_name", "inspector_name"),
        native("inspection_result", "inspection_result"),
        native("notes", "notes"),
        native("next_inspection_due", "next_inspection_due", value_type=DATE),
        native("valid_through", "valid_through", value_type=DATE),
        native("compliance", "compliance"),
        native("status", "status", ignore=("All",)),
        native("inspection_status", filter_paths=["status"], ignore=("All",)),
        native("type", "type"),
        native("created_at", "created_at", value_type=DATE),
        native("updated_at", "updated_at", value_type=DATE),
        native("violation_code", filter_paths=["violations.violation_code"]),
        native("severity_level", filter_paths=["violations.severity_level"]),
        virtual("violations", _violations, requires=["violations"]),
        virtual("recordType", _record_type(RecordType.DOT), match=Match.EQUALS),
    ],
    default_sort="dot_inspection_id",
)


def _dot_ids(ids: Sequence[int], *conditions):
    return (
        select(DotInspection.dot_inspection_id)
        .where(DotInspection.dot_inspection_id.in_(ids), *conditions)
        .distinct()
    )


DOT_STATISTICS = StatisticsAggregator(
    "dot_inspection_id",
    [
        QueryBucket(
            "failedInspections",
            lambda ids, now: _dot_ids(
                ids, func.upper(DotInspection.inspection_result).in_(FAILED_INSPECTION_RESULTS)
            ),
        ),
        QueryBucket(
            "unitsDueForInspection",
            lambda ids, now: _dot_ids(ids, DotInspection.next_inspection_due <= start_of_day(now)),
        ),
        QueryBucket(
            "unitsWithExpiredPermits",
            lambda ids, now: _dot_ids(ids, DotInspection.valid_through < start_of_day(now)),
        ),
    ],
    total="totalInspections",
)

_RESERVED = ("account_ids", "recordType", "excluded_pm_ids", "excluded_dot_ids")


def _merged_identity(record: Record) -> tuple[int, int]:
    if "pm_schedule_id" in record:
        return 0, record["pm_schedule_id"]
    return 1, record["dot_inspection_id"]


def _active_keys(catalog: FieldCatalog, filters: Mapping[str, Any]) -> set[str]:
    return {k for k, v in filters.items() if v not in (None, "", []) and k in catalog}


def tables_to_query(params: Mapping[str, Any]) -> tuple[bool, bool]:
    """Decide which of the PM and DOT tables a combined request needs.

    An explicit ``recordType`` wins. Otherwise a table is skipped only when
    every active filter key belongs to the other table alone.
    """
    record_type = str(params.get("recordType") or "").strip().upper()
    if record_type == RecordType.PM.value:
        return True, False
    if record_type == RecordType.DOT.value:
        return False, True
    filters = {k: v for k, v in params.items() if k not in _RESERVED}
    pm_keys = _active_keys(PM_CATALOG, filters)
    dot_keys = _active_keys(DOT_CATALOG, filters)
    return (not dot_keys or bool(pm_keys)), (not pm_keys or bool(dot_keys))


class PmDotService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _pm_engine(self, *, with_statistics: bool = True) -> ListingEngine:
        return ListingEngine(
            self.db,
            PM_CATALOG,
            statistics=PM_STATISTICS if with_statistics else None,
            enrich=latest_service_by_equipment,
        )

    def _dot_engine(self, *, with_statistics: bool = True) -> ListingEngine:
        return ListingEngine(
            self.db, DOT_CATALOG, statistics=DOT_STATISTICS if with_statistics else None
        )

    @staticmethod
    def _account_ids(params: Mapping[str, Any]) -> list[int]:
        account_ids = parse_id_list(params.get("account_ids"))
        if not account_ids:
            raise BadRequestError("account_ids must be provided")
        return account_ids

    async def list_pm_schedules(
        self, params: Mapping[str, Any], *, now: datetime | None = None
    ) -> Page:
        account_ids = self._account_ids(params)
        return await self._pm_engine().run(
            build_request(params, reserved=_RESERVED),
            scope=[PreventiveMaintenanceSchedule.account_id.in_(account_ids)],
            now=now,
        )

    async def list_dot_inspections(
        self, params: Mapping[str, Any], *, now: datetime | None = None
    ) -> Page:
        account_ids = self._account_ids(params)
        return await self._dot_engine().run(
            build_request(params, reserved=_RESERVED),
            scope=[DotInspection.account_id.in_(account_ids)],
            now=now,
        )

    async def list_records(
        self,
        params: Mapping[str, Any],
        *,
        now: datetime | None = None,
        unbounded: bool = False,
        fields: Sequence[str] | None = None,
    ) -> Page:
        """PM and DOT rows merged into one list, sorted and paginated together.

        Both candidate sets are fetched whole, so a page never mixes a partial
        PM page with a partial DOT page. Stats are reported per record type.
        """
        now = now or utcnow()
        account_ids = self._account_ids(params)
        query_pm, query_dot = tables_to_query(params)
        request = build_request(params, reserved=_RESERVED, unbounded=unbounded, fields=fields)

        merged: list[Record] = []
        stats: dict[str, dict[str, int]] = {}
        if query_pm:
            scope = [PreventiveMaintenanceSchedule.account_id.in_(account_ids)]
            excluded = parse_id_list(params.get("excluded_pm_ids"))
            if excluded:
                scope.append(PreventiveMaintenanceSchedule.pm_schedule_id.not_in(excluded))
            collected = await self._pm_engine().collect(request, scope=scope, now=now)
            stats["pm"] = counts(await PM_STATISTICS.compute(self.db, collected.records, now))
            merged.extend(collected.records)
        if query_dot:
            scope = [DotInspection.account_id.in_(account_ids)]
            excluded = parse_id_list(params.get("excluded_dot_ids"))
            if excluded:
                scope.append(DotInspection.dot_inspection_id.not_in(excluded))
            collected = await self._dot_engine().collect(request, scope=scope, now=now)
            stats["dot"] = counts(await DOT_STATISTICS.compute(self.db, collected.records, now))
            merged.extend(collected.records)

        merged = self._sort_merged(merged, request.sort)
        page = clamp_page(request.page)
        return Page(
            data=paginate(merged, page, request.per_page),
            total=len(merged),
            page=page,
            per_page=request.per_page,
            stats=stats,
        )

    @staticmethod
    def _sort_merged(records: list[Record], sort: str | None) -> list[Record]:
        """Sort merged rows in memory on the first key either catalog knows.

        Rows are first put in identity order (PM before DOT, then by id), so ties
        and requests without a usable key page the same way every time.
        """
        records = sorted(records, key=_merged_identity)
        for term in parse_sort(sort):
            descriptor = PM_CATALOG.resolve(term.key) or DOT_CATALOG.resolve(term.key)
            if descriptor is not None and descriptor.output:
                return sort_records(
                    records, descriptor.record_field, descriptor.value_type, term.descending
                )
        return records
