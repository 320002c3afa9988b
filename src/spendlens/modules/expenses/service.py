from __future__ import annotations

import logging
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from spendlens.core.currencies import is_supported_currency, normalize_currency
from spendlens.core.db import SessionFactory
from spendlens.core.errors import ExpenseNotFoundError, InvalidRecordError, PersistenceError
from spendlens.core.logging import get_logger, log_event
from spendlens.modules.expenses.models import Expense, ExpenseLineItem
from spendlens.modules.extraction.validation import (
    ValidationResult,
    normalize_category,
    validate_amount,
    validate_category,
    validate_description,
    validate_merchant,
    validate_payment_method,
)

logger = get_logger(__name__)

_ZERO = Decimal("0.00")


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def get_expense(session: Session, *, expense_id: uuid.UUID) -> Expense | None:
    return session.get(Expense, expense_id)


def upsert_expense(session: Session, *, expense: Expense) -> tuple[Expense, bool]:
    """
    Insert `expense` unless a record with the same id exists.

    Returns (record, created). An existing record is returned unchanged.
    """
    if expense.id is None:
        expense.id = uuid.uuid4()

    existing = session.get(Expense, expense.id)
    if existing is not None:
        log_event(logger, "expenses.upsert.duplicate", expense_id=str(expense.id))
        return existing, False

    try:
        with session.begin_nested():
            session.add(expense)
            session.flush()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same id.
        winner = session.get(Expense, expense.id)
        if winner is None:
            raise PersistenceError(f"Could not store expense {expense.id}") from None
        log_event(logger, "expenses.upsert.duplicate", expense_id=str(expense.id), raced=True)
        return winner, False
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Could not store expense {expense.id}") from e

    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        log_event(
            logger,
            "expenses.upsert.failed",
            level=logging.ERROR,
            expense_id=str(expense.id),
            error=str(e)[:200],
        )
        raise PersistenceError(f"Could not store expense {expense.id}") from e

    session.refresh(expense)
    log_event(
        logger,
        "expenses.upsert.created",
        expense_id=str(expense.id),
        merchant=expense.merchant,
        amount=str(expense.amount),
        currency=expense.currency,
        line_items=len(expense.line_items),
    )
    return expense, True


def list_expenses(
    session: Session, *, merchant: str | None = None, limit: int | None = None
) -> list[Expense]:
    stmt = select(Expense).order_by(Expense.expense_date.desc(), Expense.created_at.desc())
    needle = (merchant or "").strip().lower()
    if needle:
        stmt = stmt.where(func.lower(Expense.merchant).contains(needle, autoescape=True))
    if limit:
        stmt = stmt.limit(limit)
    return list(session.scalars(stmt))


def recent_expenses(session: Session, *, limit: int = 10) -> list[Expense]:
    stmt = select(Expense).order_by(Expense.created_at.desc()).limit(limit)
    return list(session.scalars(stmt))


def count_expenses(session: Session) -> int:
    return int(session.scalar(select(func.count()).select_from(Expense)) or 0)


def _require(result: ValidationResult, field: str) -> Any:
    if not result.ok:
        raise InvalidRecordError(field, result.reason or "invalid")
    return result.value


def update_expense(
    session: Session,
    *,
    expense_id: uuid.UUID,
    changes: dict[str, Any],
    max_amount: int = 1_000_000,
) -> Expense:
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise ExpenseNotFoundError(str(expense_id))

    if "merchant" in changes:
        expense.merchant = _require(validate_merchant(changes["merchant"]), "merchant")
    if "description" in changes:
        expense.description = _require(validate_description(changes["description"]), "description")
    if "category" in changes:
        expense.category = normalize_category(
            _require(validate_category(changes["category"]), "category")
        )
    if "payment_method" in changes:
        expense.payment_method = _require(
            validate_payment_method(changes["payment_method"]), "payment_method"
        )
    if "amount" in changes:
        amount = _require(validate_amount(changes["amount"], ceiling=max_amount), "amount")
        if amount <= 0:
            raise InvalidRecordError("amount", "amount must be greater than zero")
        expense.amount = amount
    if "currency" in changes:
        code = normalize_currency(changes["currency"])
        if not is_supported_currency(code):
            raise InvalidRecordError("currency", f"unsupported currency {changes['currency']!r}")
        expense.currency = code
    if changes.get("expense_date") is not None:
        expense.expense_date = changes["expense_date"]

    session.add(expense)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Could not update expense {expense_id}") from e
    session.refresh(expense)
    log_event(
        logger, "expenses.updated", expense_id=str(expense_id), changed_fields=sorted(changes)
    )
    return expense


def delete_expense(session: Session, *, expense_id: uuid.UUID) -> None:
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise ExpenseNotFoundError(str(expense_id))
    session.delete(expense)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Could not delete expense {expense_id}") from e
    log_event(logger, "expenses.deleted", expense_id=str(expense_id))


def delete_all_expenses(session: Session) -> int:
    """Remove every record and its line items. Returns the number of records removed."""
    count = count_expenses(session)
    try:
        session.execute(delete(ExpenseLineItem))
        session.execute(delete(Expense))
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError("Could not delete expenses") from e
    log_event(logger, "expenses.deleted_all", deleted=count)
    return count


# Aggregates are recomputed from the stored records on every call.


def total_spent(session: Session) -> Decimal:
    return _money(session.scalar(select(func.sum(Expense.amount))))


def monthly_total(session: Session, *, today: date) -> Decimal:
    start = today.replace(day=1)
    end = date(start.year + 1, 1, 1) if start.month == 12 else start.replace(month=start.month + 1)
    stmt = select(func.sum(Expense.amount)).where(
        Expense.expense_date >= start, Expense.expense_date < end
    )
    return _money(session.scalar(stmt))


def category_totals(session: Session) -> dict[str, Decimal]:
    stmt = select(Expense.category, func.sum(Expense.amount)).group_by(Expense.category)
    rows = [(category, _money(total)) for category, total in session.execute(stmt)]
    rows.sort(key=lambda r: r[1], reverse=True)
    return dict(rows)


def primary_currency(session: Session, *, default: str = "USD") -> str:
    stmt = (
        select(Expense.currency, func.count())
        .group_by(Expense.currency)
        .order_by(func.count().desc(), Expense.currency)
        .limit(1)
    )
    row = session.execute(stmt).first()
    return row[0] if row else default


@dataclass(frozen=True)
class ItemSummary:
    name: str
    count: int
    total: Decimal


def _line_items(session: Session) -> list[ExpenseLineItem]:
    return list(session.scalars(select(ExpenseLineItem)))


def top_items(session: Session, *, limit: int = 10) -> list[ItemSummary]:
    totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    counts: Counter[str] = Counter()
    display: dict[str, str] = {}
    for item in _line_items(session):
        key = item.name.strip().lower()
        display.setdefault(key, item.name.strip())
        totals[key] += _money(item.total_price)
        counts[key] += 1
    ranked = sorted(totals.items(), key=lambda kv: (kv[1], counts[kv[0]]), reverse=True)
    return [ItemSummary(display[k], counts[k], total) for k, total in ranked[:limit]]


def item_category_totals(session: Session) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for item in _line_items(session):
        totals[item.category or "Other"] += _money(item.total_price)
    return dict(sorted(totals.items(), key=lambda kv: kv[1], reverse=True))


def item_frequency(session: Session) -> dict[str, int]:
    counts = Counter(item.name.strip().lower() for item in _line_items(session))
    return dict(counts.most_common())


def average_item_price(session: Session, *, name: str) -> Decimal | None:
    needle = name.strip().lower()
    prices = [
        _money(item.unit_price if item.unit_price is not None else item.total_price)
        for item in _line_items(session)
        if item.name.strip().lower() == needle
    ]
    if not prices:
        return None
    return (sum(prices, _ZERO) / len(prices)).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class SpendingSummary:
    expense_count: int
    total_spent: Decimal
    monthly_total: Decimal
    primary_currency: str
    category_totals: dict[str, Decimal]
    top_items: list[ItemSummary]


def spending_summary(session: Session, *, today: date, top_item_limit: int = 10) -> SpendingSummary:
    return SpendingSummary(
        expense_count=count_expenses(session),
        total_spent=total_spent(session),
        monthly_total=monthly_total(session, today=today),
        primary_currency=primary_currency(session),
        category_totals=category_totals(session),
        top_items=top_items(session, limit=top_item_limit),
    )


class ExpenseSource:
    """Read access to the whole record set for background analysis."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    def count(self) -> int:
        with self.session_factory() as session:
            return count_expenses(session)

    def fetch_all(self) -> list[Expense]:
        with self.session_factory() as session:
            # line_items load eagerly (selectin) so records stay usable after close.
            return list_expenses(session)
