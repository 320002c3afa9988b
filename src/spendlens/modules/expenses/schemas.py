from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel


class LineItemOut(BaseModel):
    id: uuid.UUID
    position: int
    name: str
    quantity: Decimal | None
    unit_price: Decimal | None
    total_price: Decimal
    category: str | None
    description: str | None


class ExpenseOut(BaseModel):
    id: uuid.UUID
    expense_date: date
    merchant: str
    amount: Decimal
    currency: str
    category: str
    description: str | None
    payment_method: str | None
    tax_amount: Decimal | None
    subtotal: Decimal | None
    discounts: Decimal | None
    fees: Decimal | None
    tip: Decimal | None
    items_total: Decimal | None
    extraction_confidence: float | None
    line_items: list[LineItemOut]
    created_at: datetime
    updated_at: datetime


class ExpenseUpdateIn(BaseModel):
    expense_date: date | None = None
    merchant: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    category: str | None = None
    description: str | None = None
    payment_method: str | None = None


class ItemSummaryOut(BaseModel):
    name: str
    count: int
    total: Decimal


class SpendingSummaryOut(BaseModel):
    expense_count: int
    total_spent: Decimal
    monthly_total: Decimal
    primary_currency: str
    category_totals: dict[str, Decimal]
    top_items: list[ItemSummaryOut]
