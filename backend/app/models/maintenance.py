"""Preventive maintenance schedules/events and DOT inspections."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


class FacilityLookup(Base):
    __tablename__ = "facility_lookup"

    facility_lookup_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    facility_code: Mapped[str | None] = mapped_column(String(30), nullable=True)
    facility_name: Mapped[str | None] = mapped_column(String(200), nullable=True)


class PreventiveMaintenanceSchedule(Base):
    __tablename__ = "preventive_maintenance_schedule"

    pm_schedule_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("account.account_id"), nullable=False, index=True
    )
    equipment_id: Mapped[int | None] = mapped_column(
        ForeignKey("equipment.equipment_id"), nullable=True, index=True
    )
    facility_lookup_id: Mapped[int | None] = mapped_column(
        ForeignKey("facility_lookup.facility_lookup_id"), nullable=True
    )
    pm_task_description: Mapped[str | None] = mapped_column(String(300), nullable=True)
    frequency_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    frequency_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    account: Mapped["Account"] = relationship()
    equipment: Mapped["Equipment | None"] = relationship()
    facility: Mapped["FacilityLookup | None"] = relationship()
    events: Mapped[list["PreventiveMaintenanceEvent"]] = relationship(
        back_populates="schedule",
        order_by="PreventiveMaintenanceEvent.pm_event_id",
    )


class PreventiveMaintenanceEvent(Base):
    __tablename__ = "preventive_maintenance_event"

    pm_event_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pm_schedule_id: Mapped[int] = mapped_column(
        ForeignKey("preventive_maintenance_schedule.pm_schedule_id"), nullable=False, index=True
    )
    performed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    schedule: Mapped["PreventiveMaintenanceSchedule"] = relationship(back_populates="events")


class DotInspection(TimestampMixin, Base):
    __tablename__ = "dot_inspection"

    dot_inspection_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int | None] = mapped_column(
        ForeignKey("equipment.equipment_id"), nullable=True, index=True
    )
    account_id: Mapped[int | None] = mapped_column(
        ForeignKey("account.account_id"), nullable=True, index=True
    )
    schedule_agreement_id: Mapped[int | None] = mapped_column(
        ForeignKey("schedule_agreement.schedule_agreement_id"), nullable=True
    )
    inspection_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    inspector_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    inspection_result: Mapped[str | None] = mapped_column(String(30), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_inspection_due: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    valid_through: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    compliance: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    equipment: Mapped["Equipment | None"] = relationship(back_populates="dot_inspections")
    account: Mapped["Account | None"] = relationship()
    violations: Mapped[list["DotInspectionViolation"]] = relationship(
        order_by="DotInspectionViolation.dot_inspection_violation_id",
    )


class DotInspectionViolation(Base):
    __tablename__ = "dot_inspection_violation"

    dot_inspection_violation_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dot_inspection_id: Mapped[int] = mapped_column(
        ForeignKey("dot_inspection.dot_inspection_id"), nullable=False, index=True
    )
    violation_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    severity_level: Mapped[str | None] = mapped_column(String(30), nullable=True)
    corrective_action_taken: Mapped[str | None] = mapped_column(Text, nullable=True)
