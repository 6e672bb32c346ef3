"""Status codes and labels stored as plain strings in the fleet schema."""

import enum


class IotMappingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class MotionStatus(str, enum.Enum):
    MOVING = "MOVING"
    STOPPED = "STOPPED"


class ErsStatus(str, enum.Enum):
    IN_PROGRESS = "inprogress"
    COMPLETED = "completed"


class InspectionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class PmEventStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    SCHEDULED = "SCHEDULED"


class RecordType(str, enum.Enum):
    PM = "PM"
    DOT = "DOT"


FAILED_INSPECTION_RESULTS = ("FAIL", "FAILED", "FAILURE")
