# tests/conftest.py
import os

# Must be set before app.config is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

import app.models  # noqa: F401
from app.core.rate_limit import reset_rate_limits
from app.database import Base, async_session_factory, engine
from app.models import (
    Account,
    Customer,
    DotInspection,
    DotInspectionViolation,
    Equipment,
    EquipmentAssignment,
    EquipmentHasIotDevice,
    EquipmentTypeAllocation,
    EquipmentTypeLookup,
    Ers,
    Invoice,
    IotDevice,
    IotDeviceVendor,
    MasterAgreement,
    OemMakeModel,
    PreventiveMaintenanceEvent,
    PreventiveMaintenanceSchedule,
    ScheduleAgreement,
    ScheduleAgreementLineItem,
    ServiceRequest,
    Telematics,
    VmrsLookup,
    Workorder,
    WorkorderVmrs,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory schema per test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session_factory() as session:
        yield session
    await engine.dispose()


def _equipment(equipment_id, unit_number, status, *, year="2020", vendor_device=None,
               mapping_status="ACTIVE", telematics=None):
    equipment = Equipment(
        equipment_id=equipment_id,
        unit_number=unit_number,
        status=status,
        oem_make_model_id=1 if year == "2020" else 2,
        equipment_type_lookup_id=1,
    )
    rows = [equipment]
    if vendor_device is not None:
        rows.append(EquipmentHasIotDevice(
            equipment_id=equipment_id, iot_device_id=vendor_device, status=mapping_status
        ))
    if telematics is not None:
        lat, lng, motion, received = telematics
        rows.append(Telematics(
            equipment_id=equipment_id,
            latitude=lat,
            longitude=lng,
            motion_status=motion,
            address=f"Yard {unit_number}",
            received_timestamp=received,
        ))
    return rows


@pytest_asyncio.fixture
async def fleet(db):
    """Two accounts; account 1 holds equipment 1-5, account 2 holds equipment 6.

    Active units 1-3 carry the vendors Zeta, Acme and Bravo.
    """
    db.add_all([
        Customer(customer_id=1, customer_name="Alpha Group", customer_po="PO-77"),
        Account(account_id=1, account_number="1001", account_name="Alpha Logistics", customer_id=1),
        Account(account_id=2, account_number="2002", account_name="Bravo Freight", customer_id=1),
        EquipmentTypeLookup(equipment_type_lookup_id=1, equipment_type="Dry Van"),
        OemMakeModel(oem_make_model_id=1, make="Utility", model="4000D", year="2020"),
        OemMakeModel(oem_make_model_id=2, make="Wabash", model="DuraPlate", year="2021"),
        IotDeviceVendor(iot_device_vendor_id=1, vendor_name="Zeta"),
        IotDeviceVendor(iot_device_vendor_id=2, vendor_name="Acme"),
        IotDeviceVendor(iot_device_vendor_id=3, vendor_name="Bravo"),
        IotDevice(iot_device_id=1, serial_number="Z-1", iot_device_vendor_id=1),
        IotDevice(iot_device_id=2, serial_number="A-1", iot_device_vendor_id=2),
        IotDevice(iot_device_id=3, serial_number="B-1", iot_device_vendor_id=3),
        IotDevice(iot_device_id=4, serial_number="A-2", iot_device_vendor_id=2),
        MasterAgreement(master_agreement_id=1, contract_start_date=utc(2023, 1, 1)),
        ScheduleAgreement(
            schedule_agreement_id=1,
            schedule_agreement_ref="SA-1",
            master_agreement_id=1,
            schedule_type="Lease",
            contract_term_type="Fixed",
            termination_date=utc(2026, 12, 31),
        ),
        ScheduleAgreementLineItem(
            schedule_agreement_line_item_id=1, schedule_agreement_id=1, rate=Decimal("125.50")
        ),
        EquipmentTypeAllocation(
            equipment_type_allocation_id=1, account_id=1, schedule_agreement_line_item_id=1
        ),
        EquipmentTypeAllocation(equipment_type_allocation_id=2, account_id=2),
    ])
    await db.flush()

    db.add_all([
        *_equipment(1, "U-100", "ACTIVE", vendor_device=1,
                    telematics=(40.0, -75.0, "STOPPED", utc(2024, 6, 15, 9, 5))),
        *_equipment(2, "U-200", "ACTIVE", year="2021", vendor_device=2,
                    telematics=(41.5, -80.0, "MOVING", utc(2024, 6, 15, 14, 30))),
        *_equipment(3, "U-300", "ACTIVE", vendor_device=3, mapping_status="INACTIVE"),
        *_equipment(4, "U-400", "INACTIVE",
                    telematics=(40.05, -75.05, "STOPPED", utc(2024, 6, 14, 18, 0))),
        *_equipment(5, "U-500", "INACTIVE"),
        *_equipment(6, "U-600", "ACTIVE", vendor_device=4),
    ])
    await db.flush()

    db.add_all([
        EquipmentAssignment(equipment_assignment_id=1, equipment_id=1,
                            equipment_type_allocation_id=1, activation_date=utc(2024, 1, 10)),
        EquipmentAssignment(equipment_assignment_id=2, equipment_id=2,
                            equipment_type_allocation_id=1, activation_date=utc(2024, 3, 5)),
        EquipmentAssignment(equipment_assignment_id=3, equipment_id=3,
                            equipment_type_allocation_id=1, activation_date=utc(2024, 5, 20, 23, 30)),
        EquipmentAssignment(equipment_assignment_id=4, equipment_id=4,
                            equipment_type_allocation_id=1),
        EquipmentAssignment(equipment_assignment_id=5, equipment_id=5,
                            equipment_type_allocation_id=1, activation_date=utc(2024, 2, 1)),
        EquipmentAssignment(equipment_assignment_id=6, equipment_id=6,
                            equipment_type_allocation_id=2, activation_date=utc(2024, 1, 1)),
        DotInspection(
            dot_inspection_id=1, equipment_id=1, account_id=1,
            inspection_date=utc(2024, 5, 1), inspector_name="Kim", inspection_result="FAIL",
            next_inspection_due=utc(2024, 6, 1), valid_through=utc(2024, 6, 16),
            status="ACTIVE", type="Annual",
        ),
        DotInspection(
            dot_inspection_id=2, equipment_id=2, account_id=1,
            inspection_date=utc(2023, 12, 1), inspector_name="Lee", inspection_result="PASS",
            next_inspection_due=utc(2024, 12, 1), valid_through=utc(2025, 6, 1),
            status="ACTIVE", type="Annual",
        ),
        DotInspection(
            dot_inspection_id=3, equipment_id=6, account_id=2,
            inspection_result="PASS", next_inspection_due=utc(2024, 9, 1), status="ACTIVE",
        ),
        DotInspectionViolation(
            dot_inspection_violation_id=1, dot_inspection_id=1,
            violation_code="V-1", description="Brake lamp out", severity_level="HIGH",
        ),
        ServiceRequest(service_request_id=1, account_id=1, equipment_id=2, created_at=utc(2024, 1, 14)),
        ServiceRequest(service_request_id=2, account_id=1, equipment_id=1, created_at=utc(2024, 2, 27)),
        ServiceRequest(service_request_id=3, account_id=2, equipment_id=6, created_at=utc(2024, 4, 1)),
        Ers(ers_id=1, service_request_id=1, ers_ref_id="ERS-1", ers_status="inprogress"),
        VmrsLookup(vmrs_lookup_id=1, vmrs_code="013", description="Brakes"),
    ])
    await db.flush()

    db.add_all([
        Workorder(
            workorder_id=1, service_request_id=1, workorder_ref_id="WO-1",
            technician_name="Sam", workorder_status="OPEN",
            workorder_start_date=utc(2024, 1, 15), workorder_end_date=utc(2024, 1, 20),
            created_at=utc(2024, 1, 15, 8, 0),
        ),
        Workorder(
            workorder_id=2, service_request_id=1, workorder_ref_id="WO-2",
            technician_name="Alex", workorder_status="CLOSED",
            created_at=utc(2024, 2, 10, 10, 0),
        ),
        Workorder(
            workorder_id=3, service_request_id=2, workorder_ref_id="WO-3",
            technician_name="Sam", workorder_status="OPEN",
            workorder_start_date=utc(2024, 2, 28), workorder_end_date=utc(2024, 3, 2),
            created_at=utc(2024, 3, 1, 9, 0),
        ),
        Workorder(
            workorder_id=4, service_request_id=3, workorder_ref_id="WO-4",
            technician_name="Pat", workorder_status="OPEN", created_at=utc(2024, 4, 2),
        ),
        PreventiveMaintenanceSchedule(
            pm_schedule_id=1, account_id=1, equipment_id=1, pm_task_description="Quarterly PM",
            frequency_interval=90, frequency_type="DAYS", type="PM", status="ACTIVE",
        ),
        PreventiveMaintenanceSchedule(
            pm_schedule_id=2, account_id=1, equipment_id=2, pm_task_description="Annual PM",
            frequency_interval=1, frequency_type="YEARS", type="PM", status="INACTIVE",
        ),
    ])
    await db.flush()

    db.add_all([
        Invoice(invoice_id=1, workorder_id=1, invoice_number="INV-100",
                date=utc(2024, 1, 21), total_amount=Decimal("150.00")),
        Invoice(invoice_id=2, workorder_id=2, invoice_number="INV-050",
                date=utc(2024, 2, 12), total_amount=Decimal("90.00")),
        WorkorderVmrs(workorder_vmrs_id=1, workorder_id=1, vmrs_lookup_id=1),
        PreventiveMaintenanceEvent(pm_event_id=1, pm_schedule_id=1,
                                   performed_date=utc(2024, 6, 1), status="COMPLETED"),
        PreventiveMaintenanceEvent(pm_event_id=2, pm_schedule_id=1,
                                   next_due_date=utc(2024, 6, 10), status="SCHEDULED"),
        PreventiveMaintenanceEvent(pm_event_id=3, pm_schedule_id=2,
                                   next_due_date=utc(2024, 7, 1), status="SCHEDULED"),
        PreventiveMaintenanceEvent(pm_event_id=4, pm_schedule_id=2,
                                   performed_date=utc(2024, 3, 1), status="COMPLETED"),
    ])
    await db.commit()
    db.expunge_all()
    return db
