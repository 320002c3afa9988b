from __future__ import annotations

from fastapi import HTTPException, Request, status

from spendlens.bootstrap import Services
from spendlens.core.errors import (
    AnalysisInProgressError,
    ExpenseNotFoundError,
    ExtractionError,
    InvalidRecordError,
    ModelRejectionError,
    PreconditionError,
    TransportError,
)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Services not initialised"
        )
    return services


def http_error(exc: Exception) -> HTTPException:
    """Translate a domain failure into the HTTP status a client can act on."""
    if isinstance(exc, ExpenseNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    if isinstance(exc, AnalysisInProgressError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PreconditionError):
        return HTTPException(status_code=status.HTTP_412_PRECONDITION_FAILED, detail=str(exc))
    if isinstance(exc, InvalidRecordError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, TransportError):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc))
    if isinstance(exc, ModelRejectionError) and exc.retryable:
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, ExtractionError):
        status_code = (
            status.HTTP_503_SERVICE_UNAVAILABLE if exc.retryable else status.HTTP_502_BAD_GATEWAY
        )
        return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")
