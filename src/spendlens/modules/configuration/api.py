from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from spendlens.api.deps import get_services, http_error
from spendlens.bootstrap import Services
from spendlens.core.credentials import OPENAI_API_KEY, validate_api_key_format
from spendlens.core.db import db_session
from spendlens.core.errors import ExtractionError
from spendlens.core.logging import get_logger, log_event
from spendlens.modules.configuration.schemas import ApiKeyIn, CredentialStatusOut, ResetOut
from spendlens.modules.expenses.service import delete_all_expenses

router = APIRouter(tags=["configuration"])
logger = get_logger(__name__)


@router.get("/credentials/openai", response_model=CredentialStatusOut)
def openai_key_status(services: Services = Depends(get_services)) -> CredentialStatusOut:
    return CredentialStatusOut(configured=services.credentials.has(OPENAI_API_KEY))


@router.put("/credentials/openai", response_model=CredentialStatusOut)
def set_openai_key(
    payload: ApiKeyIn, services: Services = Depends(get_services)
) -> CredentialStatusOut:
    key = payload.api_key.strip()
    if not validate_api_key_format(key):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="API key must start with 'sk-' and contain only letters, digits, '-' or '_'",
        )
    services.credentials.set(OPENAI_API_KEY, key)
    # Never log the key itself.
    log_event(logger, "credentials.updated", name=OPENAI_API_KEY)
    return CredentialStatusOut(configured=True)


@router.delete("/credentials/openai")
def delete_openai_key(services: Services = Depends(get_services)) -> Response:
    services.credentials.delete(OPENAI_API_KEY)
    log_event(logger, "credentials.deleted", name=OPENAI_API_KEY)
    return Response(status_code=204)


@router.post("/reset", response_model=ResetOut)
def reset_all_data(
    session: Session = Depends(db_session),
    services: Services = Depends(get_services),
) -> ResetOut:
    """Delete every stored expense and the cached insights. Credentials are kept."""
    try:
        deleted = delete_all_expenses(session)
    except ExtractionError as e:
        raise http_error(e) from e
    services.scheduler.clear_cache()
    log_event(logger, "data.reset", deleted_expenses=deleted)
    return ResetOut(deleted_expenses=deleted)
