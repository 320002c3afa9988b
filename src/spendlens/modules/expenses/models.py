from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Float, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spendlens.core.models import Base, Timestamped, UUIDPrimaryKey


class Expense(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "expenses_expense"

    expense_date: Mapped[date] = mapped_column(Date, index=True)
    merchant: Mapped[str] = mapped_column(String(100), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3))
    category: Mapped[str] = mapped_column(String(50), index=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tax_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    subtotal: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    discounts: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    fees: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    tip: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    items_total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    extraction_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    prompt_version: Mapped[int | None] = mapped_column(Integer, nullable=True)

    line_items: Mapped[list[ExpenseLineItem]] = relationship(
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseLineItem.position",
        lazy="selectin",
    )


class ExpenseLineItem(UUIDPrimaryKey, Base):
    __tablename__ = "expenses_line_item"

    expense_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("expenses_expense.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)

    name: Mapped[str] = mapped_column(String(200))
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    expense: Mapped[Expense] = relationship(back_populates="line_items")
