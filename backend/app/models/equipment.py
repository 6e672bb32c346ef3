"""Equipment, its lookups, telematics, IoT devices and assignments."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


class EquipmentTypeLookup(Base):
    __tablename__ = "equipment_type_lookup"

    equipment_type_lookup_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_type: Mapped[str] = mapped_column(String(100), nullable=False)


class OemMakeModel(Base):
    __tablename__ = "oem_make_model"

    oem_make_model_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    make: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    year: Mapped[str | None] = mapped_column(String(4), nullable=True)
    length: Mapped[str | None] = mapped_column(String(20), nullable=True)


class Equipment(TimestampMixin, Base):
    __tablename__ = "equipment"

    equipment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    unit_number: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    customer_unit_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vin: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    telematic_device_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    door_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    wall_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    brake_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(30), nullable=True)
    liftgate: Mapped[str | None] = mapped_column(String(50), nullable=True)
    liftgate_serial: Mapped[str | None] = mapped_column(String(50), nullable=True)
    domicile: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ten_branch: Mapped[str | None] = mapped_column(String(50), nullable=True)
    dot_cvi_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reefer_make_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reefer_serial: Mapped[str | None] = mapped_column(String(50), nullable=True)
    trailer_height: Mapped[str | None] = mapped_column(String(20), nullable=True)
    trailer_width: Mapped[str | None] = mapped_column(String(20), nullable=True)
    trailer_length: Mapped[str | None] = mapped_column(String(20), nullable=True)
    tire_size: Mapped[str | None] = mapped_column(String(30), nullable=True)
    floor_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    roof_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rim_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    date_in_service: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_pm_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_pm_due: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_m_and_r_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_reefer_pm_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_reefer_pm_due: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    oem_make_model_id: Mapped[int | None] = mapped_column(
        ForeignKey("oem_make_model.oem_make_model_id"), nullable=True
    )
    equipment_type_lookup_id: Mapped[int | None] = mapped_column(
        ForeignKey("equipment_type_lookup.equipment_type_lookup_id"), nullable=True
    )

    # Relationships
    oem_make_model: Mapped["OemMakeModel | None"] = relationship()
    equipment_type_lookup: Mapped["EquipmentTypeLookup | None"] = relationship()
    permit: Mapped["EquipmentPermit | None"] = relationship(
        back_populates="equipment", uselist=False
    )
    telematics: Mapped["Telematics | None"] = relationship(
        back_populates="equipment", uselist=False
    )
    iot_device_mapping: Mapped["EquipmentHasIotDevice | None"] = relationship(
        back_populates="equipment", uselist=False
    )
    load_details: Mapped[list["EquipmentLoadDetail"]] = relationship(
        order_by="EquipmentLoadDetail.equipment_load_date.desc()",
    )
    dot_inspections: Mapped[list["DotInspection"]] = relationship(
        back_populates="equipment",
        order_by="DotInspection.next_inspection_due.desc()",
    )


class EquipmentPermit(Base):
    __tablename__ = "equipment_permit"

    equipment_permit_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(
        ForeignKey("equipment.equipment_id"), unique=True, nullable=False
    )
    license_plate_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    license_plate_state: Mapped[str | None] = mapped_column(String(20), nullable=True)

    equipment: Mapped["Equipment"] = relationship(back_populates="permit")


class Telematics(Base):
    __tablename__ = "telematics"

    telematics_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(
        ForeignKey("equipment.equipment_id"), unique=True, nullable=False
    )
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    address: Mapped[str | None] = mapped_column(String(300), nullable=True)
    motion_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    alarm_code_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    received_timestamp: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    equipment: Mapped["Equipment"] = relationship(back_populates="telematics")


class IotDeviceVendor(Base):
    __tablename__ = "iot_device_vendor"

    iot_device_vendor_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vendor_name: Mapped[str] = mapped_column(String(100), nullable=False)


class IotDevice(Base):
    __tablename__ = "iot_device"

    iot_device_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    serial_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    iot_device_vendor_id: Mapped[int | None] = mapped_column(
        ForeignKey("iot_device_vendor.iot_device_vendor_id"), nullable=True
    )

    vendor: Mapped["IotDeviceVendor | None"] = relationship()


class EquipmentHasIotDevice(Base):
    __tablename__ = "equipment_has_iot_device"

    equipment_has_iot_device_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(
        ForeignKey("equipment.equipment_id"), unique=True, nullable=False
    )
    iot_device_id: Mapped[int | None] = mapped_column(
        ForeignKey("iot_device.iot_device_id"), nullable=True
    )
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    equipment: Mapped["Equipment"] = relationship(back_populates="iot_device_mapping")
    iot_device: Mapped["IotDevice | None"] = relationship()


class LoadStatusLookup(Base):
    __tablename__ = "load_status_lookup"

    load_status_lookup_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    field_code: Mapped[str] = mapped_column(String(30), nullable=False)


class EquipmentLoadDetail(Base):
    __tablename__ = "equipment_load_detail"

    equipment_load_detail_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(
        ForeignKey("equipment.equipment_id"), nullable=False, index=True
    )
    equipment_load_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    equipment_load_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    equipment_unload_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    load_status_lookup_id: Mapped[int | None] = mapped_column(
        ForeignKey("load_status_lookup.load_status_lookup_id"), nullable=True
    )

    load_status: Mapped["LoadStatusLookup | None"] = relationship()


class EquipmentAssignment(Base):
    """One equipment unit allocated to an account under a contract line."""

    __tablename__ = "equipment_assignment"

    equipment_assignment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    equipment_id: Mapped[int] = mapped_column(
        ForeignKey("equipment.equipment_id"), nullable=False
    )
    equipment_type_allocation_id: Mapped[int] = mapped_column(
        ForeignKey("equipment_type_allocation.equipment_type_allocation_id"), nullable=False
    )
    activation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deactivation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    equipment: Mapped["Equipment"] = relationship()
    allocation: Mapped["EquipmentTypeAllocation"] = relationship()

    __table_args__ = (
        Index("ix_equipment_assignment_equipment", "equipment_id"),
        Index("ix_equipment_assignment_allocation", "equipment_type_allocation_id"),
    )
