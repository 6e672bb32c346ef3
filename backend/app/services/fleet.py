"""Fleet list view: equipment assignments with contract, telematics and IoT data."""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestError, NotFoundError
from app.models import (
    DotInspection,
    EquipmentAssignment,
    EquipmentHasIotDevice,
    EquipmentTypeAllocation,
    Ers,
    ServiceRequest,
)
from app.models.enums import ErsStatus, InspectionStatus, IotMappingStatus, MotionStatus
from app.services.field_catalog import (
    FieldCatalog,
    Match,
    ProjectionContext,
    ValueType,
    derived,
    follow,
    native,
    virtual,
)
from app.services.listing import ListingEngine, ListingRequest, Page, Record, utcnow
from app.services.request_params import (
    build_request,
    parse_bool,
    parse_id_list,
    wants_everything,
)
from app.services.statistics import QueryBucket, RecordBucket, StatisticsAggregator

logger = logging.getLogger(__name__)

DATE = ValueType.DATE
NUMBER = ValueType.NUMBER

_SCHEDULE = "allocation.line_item.schedule_agreement"
_TELEMATICS = "equipment.telematics"


def _driver_name(row: EquipmentAssignment, context: ProjectionContext) -> str:
    return f"Driver {follow(row, ('equipment', 'unit_number')) or ''}"


def _account_label(row: EquipmentAssignment, context: ProjectionContext) -> str | None:
    account = row.allocation.account if row.allocation else None
    if account is None:
        return None
    return f"({account.account_number}) - {account.account_name}"


def _gps_coordinates(row: EquipmentAssignment, context: ProjectionContext) -> str | None:
    telematics = row.equipment.telematics if row.equipment else None
    if telematics is None or telematics.latitude is None or telematics.longitude is None:
        return None
    return f"{telematics.latitude},{telematics.longitude}"


def _arrival_time(row: EquipmentAssignment, context: ProjectionContext) -> str | None:
    received = follow(row, ("equipment", "telematics", "received_timestamp"))
    if received is None:
        return None
    return received.strftime("%I:%M %p")


def _load_status(row: EquipmentAssignment, context: ProjectionContext) -> str | None:
    details = row.equipment.load_details if row.equipment else []
    if not details:
        return None
    latest = details[0]
    if latest.load_status is not None:
        return latest.load_status.field_code
    return latest.equipment_load_status


FLEET_CATALOG = FieldCatalog(
    "fleet",
    EquipmentAssignment,
    [
        # Assignment
        native("equipment_assignment_id", "equipment_assignment_id", value_type=NUMBER),
        native("equipment_id", "equipment_id", value_type=NUMBER),
        virtual("equipmentId", field="equipment_id"),
        native("equipment_type_allocation_id", "equipment_type_allocation_id", value_type=NUMBER),
        native("activationDate", "activation_date", value_type=DATE),
        native("deactivationDate", "deactivation_date", value_type=DATE),
        # Equipment
        virtual("driver_name", _driver_name, requires=["equipment"]),
        native("unitNumber", "equipment.unit_number"),
        native("customerUnitNumber", "equipment.customer_unit_number"),
        native("status", "equipment.status", match=Match.EQUALS),
        native("vin", "equipment.vin"),
        native("telematicDeviceId", "equipment.telematic_device_id"),
        native("doorType", "equipment.door_type"),
        native("wallType", "equipment.wall_type"),
        native("breakType", "equipment.brake_type"),
        native("color", "equipment.color"),
        native("liftGate", "equipment.liftgate"),
        native("liftGateSerial", "equipment.liftgate_serial"),
        native("domicile", "equipment.domicile"),
        native("tenBranch", "equipment.ten_branch"),
        native("dotCviStatus", "equipment.dot_cvi_status"),
        native("reeferMakeType", "equipment.reefer_make_type"),
        native("reeferSerial", "equipment.reefer_serial"),
        native("trailerHeight", "equipment.trailer_height"),
        native("trailerWidth", "equipment.trailer_width"),
        native("trailerLength", "equipment.trailer_length"),
        native("tireSize", "equipment.tire_size"),
        native("floorType", "equipment.floor_type"),
        native("roofType", "equipment.roof_type"),
        native("rimType", "equipment.rim_type"),
        native("dateInService", "equipment.date_in_service", value_type=DATE),
        native("lastPmDate", "equipment.last_pm_date", value_type=DATE),
        native("nextPmDue", "equipment.next_pm_due", value_type=DATE),
        native("lastMrDate", "equipment.last_m_and_r_date", value_type=DATE),
        native("lastReeferPmDate", "equipment.last_reefer_pm_date", value_type=DATE),
        native("nextReeferPmDue", "equipment.next_reefer_pm_due", value_type=DATE),
        native("make", "equipment.oem_make_model.make"),
        native("model", "equipment.oem_make_model.model"),
        native("year", "equipment.oem_make_model.year", match=Match.EQUALS),
        native("length", "equipment.oem_make_model.length"),
        native("equipmentType", "equipment.equipment_type_lookup.equipment_type"),
        native("licensePlateNumber", "equipment.permit.license_plate_number"),
        native("licensePlateState", "equipment.permit.license_plate_state"),
        # Account
        native("AccountId", "allocation.account_id", value_type=NUMBER),
        native("accountNumber", "allocation.account.account_number"),
        native("accountName", "allocation.account.account_name"),
        native(
            "account",
            filter_paths=["allocation.account.account_number", "allocation.account.account_name"],
            extract=_account_label,
            requires=["allocation.account"],
        ),
        # Contract
        native("rate", "allocation.line_item.rate", value_type=NUMBER),
        native("fixedRate", "allocation.line_item.fixed_rate", value_type=NUMBER),
        native("variableRate", "allocation.line_item.variable_rate", value_type=NUMBER),
        native("estimatedMiles", "allocation.line_item.estimated_miles", value_type=NUMBER),
        native("estimatedHours", "allocation.line_item.estimated_hours", value_type=NUMBER),
        derived(
            "contractStartDate",
            f"{_SCHEDULE}.master_agreement.contract_start_date",
            value_type=DATE,
            match=Match.DAY_FROM,
        ),
        derived(
            "contractEndDate",
            f"{_SCHEDULE}.termination_date",
            value_type=DATE,
            match=Match.DAY_TO,
        ),
        derived("contractTermType", f"{_SCHEDULE}.contract_term_type"),
        derived("agreementType", f"{_SCHEDULE}.schedule_type"),
        derived("scheduleAgreementRef", f"{_SCHEDULE}.schedule_agreement_ref"),
        derived("url", f"{_SCHEDULE}.attachments.attachment.url"),
        derived("mimeType", f"{_SCHEDULE}.attachments.attachment.mime_type"),
        # IoT and telematics
        derived("vendorName", "equipment.iot_device_mapping.iot_device.vendor.vendor_name"),
        native("latitude", f"{_TELEMATICS}.latitude", value_type=NUMBER, match=Match.NEAR),
        native("longitude", f"{_TELEMATICS}.longitude", value_type=NUMBER, match=Match.NEAR),
        native(
            "last_gps_coordinates",
            filter_paths=[f"{_TELEMATICS}.latitude", f"{_TELEMATICS}.longitude"],
            match=Match.COORDINATES,
            extract=_gps_coordinates,
            requires=[_TELEMATICS],
        ),
        native("location", f"{_TELEMATICS}.address"),
        native("motionStatus", f"{_TELEMATICS}.motion_status"),
        native("alarmCodeStatus", f"{_TELEMATICS}.alarm_code_status"),
        native("lastGpsUpdate", f"{_TELEMATICS}.received_timestamp", value_type=DATE),
        native("current_equipment_gps_location_id", f"{_TELEMATICS}.telematics_id", value_type=NUMBER),
        virtual("arrivalTime", _arrival_time, requires=[_TELEMATICS]),
        # Load and inspection history
        virtual(
            "equipmentLoadStatus",
            _load_status,
            requires=["equipment.load_details.load_status"],
            match=Match.EQUALS,
        ),
        derived("equipmentLoadDate", "equipment.load_details.equipment_load_date", value_type=DATE),
        derived(
            "equipmentUnloadDate", "equipment.load_details.equipment_unload_date", value_type=DATE
        ),
        derived("dotCviExpire", "equipment.dot_inspections.next_inspection_due", value_type=DATE),
    ],
    default_sort="equipment_id",
    aliases={
        "vendor_name": "vendorName",
        "unit_number": "unitNumber",
        "lastGpsCoordinates": "last_gps_coordinates",
        "arrival_time": "arrivalTime",
    },
)


# ── Statistics ────────────────────────────────────────────────────────


def _gps_equipped(ids: Sequence[int], now: datetime):
    return (
        select(EquipmentHasIotDevice.equipment_id)
        .where(
            EquipmentHasIotDevice.equipment_id.in_(ids),
            EquipmentHasIotDevice.status == IotMappingStatus.ACTIVE.value,
        )
        .distinct()
    )


def _overdue_inspection(ids: Sequence[int], now: datetime):
    return (
        select(DotInspection.equipment_id)
        .where(DotInspection.equipment_id.in_(ids), DotInspection.next_inspection_due < now)
        .distinct()
    )


def _expiring_inspection(ids: Sequence[int], now: datetime):
    return (
        select(DotInspection.equipment_id)
        .where(
            DotInspection.equipment_id.in_(ids),
            DotInspection.valid_through < now + timedelta(days=1),
            DotInspection.status == InspectionStatus.ACTIVE.value,
        )
        .distinct()
    )


def _ers_in_progress(ids: Sequence[int], now: datetime):
    return (
        select(ServiceRequest.equipment_id)
        .join(Ers, Ers.service_request_id == ServiceRequest.service_request_id)
        .where(
            ServiceRequest.equipment_id.in_(ids),
            Ers.ers_status == ErsStatus.IN_PROGRESS.value,
        )
        .distinct()
    )


def _is_idle(record: Mapping, now: datetime) -> bool:
    return str(record.get("motionStatus") or "").upper() == MotionStatus.STOPPED.value


FLEET_STATISTICS = StatisticsAggregator(
    "equipment_id",
    [
        QueryBucket("gpsEquippedCount", _gps_equipped),
        RecordBucket("idleUnitsCount", _is_idle, "equipment_id"),
        QueryBucket("overdueDotInspectionCount", _overdue_inspection),
        QueryBucket("overDueCount", _expiring_inspection),
        QueryBucket("ersInProgressCount", _ers_in_progress),
    ],
    total="totalCount",
    complements={"accessWithoutGpsCount": "gpsEquippedCount"},
)

_RESERVED = ("account_ids", "equipment_id", "filterBy", "downloadAll")


def _account_scope(account_ids: Sequence[int]):
    return EquipmentAssignment.allocation.has(
        EquipmentTypeAllocation.account_id.in_(account_ids)
    )


def _bucket_drilldown(name: Any):
    """Narrow records to one statistics bucket after the counts are taken."""
    if not name or name == FLEET_STATISTICS.total or name not in FLEET_STATISTICS.names:
        return None

    def narrow(records: list[Record], buckets) -> list[Record]:
        members = buckets[name].members
        return [r for r in records if r.get("equipment_id") in members]

    return narrow


class FleetService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _engine(self, *, with_statistics: bool = True) -> ListingEngine:
        return ListingEngine(
            self.db,
            FLEET_CATALOG,
            statistics=FLEET_STATISTICS if with_statistics else None,
            always_project=("equipment_id", "motionStatus"),
        )

    async def list_view(self, params: Mapping[str, Any], *, now: datetime | None = None) -> Page:
        """Paginated fleet list with statistics for the whole filtered fleet."""
        account_ids = parse_id_list(params.get("account_ids"))
        if not account_ids:
            raise BadRequestError("account_ids must be provided")
        request = build_request(params, reserved=_RESERVED)
        return await self._engine().run(
            request,
            scope=[_account_scope(account_ids)],
            now=now,
            drilldown=_bucket_drilldown(params.get("filterBy")),
        )

    async def download(
        self,
        params: Mapping[str, Any],
        fields: Sequence[str] | None = None,
        *,
        now: datetime | None = None,
    ) -> list[Record]:
        """Every record matching the list-view filters, for export.

        ``account_ids="all"`` needs ``downloadAll``. Without ``downloadAll`` the
        ``equipment_id`` values are rows the user deselected and are excluded.
        """
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
        excluded = parse_id_list(params.get("equipment_id"))
        if excluded and not download_all:
            scope.append(EquipmentAssignment.equipment_id.not_in(excluded))

        drilldown = _bucket_drilldown(params.get("filterBy"))
        request = build_request(params, reserved=_RESERVED, unbounded=True, fields=fields)
        page = await self._engine(with_statistics=drilldown is not None).run(
            request, scope=scope, now=now, drilldown=drilldown
        )
        logger.info("Fleet download produced %d rows", page.total)
        return page.data

    async def get_equipment_details(
        self, account_id: int, equipment_id: int, *, now: datetime | None = None
    ) -> Record:
        collected = await self._engine(with_statistics=False).collect(
            ListingRequest(),
            scope=[
                _account_scope([account_id]),
                EquipmentAssignment.equipment_id == equipment_id,
            ],
            now=now or utcnow(),
        )
        if not collected.records:
            raise NotFoundError(f"Equipment {equipment_id} not found for account {account_id}")
        return collected.records[0]
