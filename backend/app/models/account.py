"""Customers and their billing accounts."""

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base


class Customer(Base):
    __tablename__ = "customer"

    customer_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_po: Mapped[str | None] = mapped_column(String(100), nullable=True)

    accounts: Mapped[list["Account"]] = relationship(back_populates="customer")


class Account(Base):
    __tablename__ = "account"

    account_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_number: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    account_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    customer_id: Mapped[int | None] = mapped_column(
        ForeignKey("customer.customer_id"), nullable=True
    )

    customer: Mapped["Customer | None"] = relationship(back_populates="accounts")
