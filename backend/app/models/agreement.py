"""Contracts: master agreements, schedules, line items and attachments."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base


class MasterAgreement(Base):
    __tablename__ = "master_agreement"

    master_agreement_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    master_agreement_ref: Mapped[str | None] = mapped_column(String(50), nullable=True)
    contract_start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    contract_term_type: Mapped[str | None] = mapped_column(String(50), nullable=True)


class Attachment(Base):
    __tablename__ = "attachment"

    attachment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)


class ScheduleAgreementHasAttachment(Base):
    __tablename__ = "schedule_agreement_has_attachment"

    schedule_agreement_has_attachment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    schedule_agreement_id: Mapped[int] = mapped_column(
        ForeignKey("schedule_agreement.schedule_agreement_id"), nullable=False
    )
    attachment_id: Mapped[int] = mapped_column(
        ForeignKey("attachment.attachment_id"), nullable=False
    )

    attachment: Mapped["Attachment"] = relationship()


class ScheduleAgreement(Base):
    __tablename__ = "schedule_agreement"

    schedule_agreement_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    schedule_agreement_ref: Mapped[str | None] = mapped_column(String(50), nullable=True)
    master_agreement_id: Mapped[int | None] = mapped_column(
        ForeignKey("master_agreement.master_agreement_id"), nullable=True
    )
    schedule_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    contract_term_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    termination_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    master_agreement: Mapped["MasterAgreement | None"] = relationship()
    attachments: Mapped[list["ScheduleAgreementHasAttachment"]] = relationship(
        order_by="ScheduleAgreementHasAttachment.schedule_agreement_has_attachment_id",
    )


class ScheduleAgreementLineItem(Base):
    __tablename__ = "schedule_agreement_line_item"

    schedule_agreement_line_item_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    schedule_agreement_id: Mapped[int | None] = mapped_column(
        ForeignKey("schedule_agreement.schedule_agreement_id"), nullable=True
    )
    rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    fixed_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    variable_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    estimated_miles: Mapped[int | None] = mapped_column(Integer, nullable=True)
    estimated_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)

    schedule_agreement: Mapped["ScheduleAgreement | None"] = relationship()


class EquipmentTypeAllocation(Base):
    __tablename__ = "equipment_type_allocation"

    equipment_type_allocation_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("account.account_id"), nullable=False, index=True
    )
    schedule_agreement_line_item_id: Mapped[int | None] = mapped_column(
        ForeignKey("schedule_agreement_line_item.schedule_agreement_line_item_id"),
        nullable=True,
    )

    account: Mapped["Account"] = relationship()
    line_item: Mapped["ScheduleAgreementLineItem | None"] = relationship()
