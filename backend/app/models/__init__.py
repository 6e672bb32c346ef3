"""All fleet database models.

Import all models here so SQLAlchemy can resolve string relationship targets.
"""

from app.models.base import Base, TimestampMixin  # noqa: F401

# Accounts
from app.models.account import Account, Customer  # noqa: F401

# Contracts
from app.models.agreement import (  # noqa: F401
    Attachment,
    EquipmentTypeAllocation,
    MasterAgreement,
    ScheduleAgreement,
    ScheduleAgreementHasAttachment,
    ScheduleAgreementLineItem,
)

# Equipment
from app.models.equipment import (  # noqa: F401
    Equipment,
    EquipmentAssignment,
    EquipmentHasIotDevice,
    EquipmentLoadDetail,
    EquipmentPermit,
    EquipmentTypeLookup,
    IotDevice,
    IotDeviceVendor,
    LoadStatusLookup,
    OemMakeModel,
    Telematics,
)

# Maintenance
from app.models.maintenance import (  # noqa: F401
    DotInspection,
    DotInspectionViolation,
    FacilityLookup,
    PreventiveMaintenanceEvent,
    PreventiveMaintenanceSchedule,
)

# Service
from app.models.service_request import (  # noqa: F401
    Ers,
    Invoice,
    ServiceRequest,
    VmrsLookup,
    Workorder,
    WorkorderVmrs,
)
