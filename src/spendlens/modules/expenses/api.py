from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from spendlens.api.deps import get_services, http_error
from spendlens.bootstrap import Services
from spendlens.core.config import settings
from spendlens.core.db import db_session
from spendlens.core.errors import ExpenseNotFoundError, ExtractionError
from spendlens.core.models import utcnow
from spendlens.modules.expenses.schemas import ExpenseOut, ExpenseUpdateIn, SpendingSummaryOut
from spendlens.modules.expenses.service import (
    delete_expense,
    get_expense,
    list_expenses,
    recent_expenses,
    spending_summary,
    update_expense,
)

router = APIRouter(tags=["expenses"])


@router.get("/expenses", response_model=list[ExpenseOut])
def list_expenses_endpoint(
    merchant: str | None = None,
    limit: int | None = None,
    session: Session = Depends(db_session),
) -> list[ExpenseOut]:
    return [
        ExpenseOut.model_validate(e, from_attributes=True)
        for e in list_expenses(session, merchant=merchant, limit=limit)
    ]


@router.get("/expenses/summary", response_model=SpendingSummaryOut)
def summary_endpoint(session: Session = Depends(db_session)) -> SpendingSummaryOut:
    summary = spending_summary(session, today=utcnow().date())
    return SpendingSummaryOut.model_validate(summary, from_attributes=True)


@router.get("/expenses/recent", response_model=list[ExpenseOut])
def recent_expenses_endpoint(
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(db_session),
) -> list[ExpenseOut]:
    return [
        ExpenseOut.model_validate(e, from_attributes=True)
        for e in recent_expenses(session, limit=limit)
    ]


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense_endpoint(
    expense_id: uuid.UUID, session: Session = Depends(db_session)
) -> ExpenseOut:
    expense = get_expense(session, expense_id=expense_id)
    if expense is None:
        raise http_error(ExpenseNotFoundError(str(expense_id)))
    return ExpenseOut.model_validate(expense, from_attributes=True)


@router.patch("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense_endpoint(
    expense_id: uuid.UUID,
    payload: ExpenseUpdateIn,
    session: Session = Depends(db_session),
) -> ExpenseOut:
    try:
        expense = update_expense(
            session,
            expense_id=expense_id,
            changes=payload.model_dump(exclude_unset=True),
            max_amount=settings.max_amount,
        )
    except (ExpenseNotFoundError, ExtractionError) as e:
        raise http_error(e) from e
    return ExpenseOut.model_validate(expense, from_attributes=True)


@router.delete("/expenses/{expense_id}")
def delete_expense_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    services: Services = Depends(get_services),
) -> Response:
    try:
        delete_expense(session, expense_id=expense_id)
    except (ExpenseNotFoundError, ExtractionError) as e:
        raise http_error(e) from e
    services.scheduler.notify_records_changed()
    return Response(status_code=204)
