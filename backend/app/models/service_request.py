"""Service requests, roadside (ERS) jobs, workorders and invoices."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base


class ServiceRequest(Base):
    __tablename__ = "service_request"

    service_request_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int | None] = mapped_column(
        ForeignKey("account.account_id"), nullable=True, index=True
    )
    equipment_id: Mapped[int | None] = mapped_column(
        ForeignKey("equipment.equipment_id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    account: Mapped["Account | None"] = relationship()
    equipment: Mapped["Equipment | None"] = relationship()
    workorders: Mapped[list["Workorder"]] = relationship(back_populates="service_request")


class Ers(Base):
    __tablename__ = "ers"

    ers_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    service_request_id: Mapped[int] = mapped_column(
        ForeignKey("service_request.service_request_id"), nullable=False, index=True
    )
    ers_ref_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ers_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    service_request: Mapped["ServiceRequest"] = relationship()


class Workorder(Base):
    __tablename__ = "workorder"

    workorder_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    service_request_id: Mapped[int | None] = mapped_column(
        ForeignKey("service_request.service_request_id"), nullable=True, index=True
    )
    workorder_ref_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    technician_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    workorder_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    workorder_assigned_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    workorder_eta: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    workorder_start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    workorder_end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    service_request: Mapped["ServiceRequest | None"] = relationship(back_populates="workorders")
    invoices: Mapped[list["Invoice"]] = relationship(order_by="Invoice.invoice_id")
    vmrs_codes: Mapped[list["WorkorderVmrs"]] = relationship(order_by="WorkorderVmrs.workorder_vmrs_id")


class Invoice(Base):
    __tablename__ = "invoice"

    invoice_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    workorder_id: Mapped[int] = mapped_column(
        ForeignKey("workorder.workorder_id"), nullable=False, index=True
    )
    invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)


class VmrsLookup(Base):
    __tablename__ = "vmrs_lookup"

    vmrs_lookup_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vmrs_code: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str | None] = mapped_column(String(300), nullable=True)


class WorkorderVmrs(Base):
    __tablename__ = "workorder_vmrs"

    workorder_vmrs_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    workorder_id: Mapped[int] = mapped_column(
        ForeignKey("workorder.workorder_id"), nullable=False, index=True
    )
    vmrs_lookup_id: Mapped[int] = mapped_column(
        ForeignKey("vmrs_lookup.vmrs_lookup_id"), nullable=False
    )

    vmrs: Mapped["VmrsLookup"] = relationship()
