from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from spendlens.api.deps import get_services
from spendlens.bootstrap import Services
from spendlens.core.logging import get_logger, log_event
from spendlens.modules.expenses.schemas import ExpenseOut
from spendlens.modules.extraction.service import Upload

router = APIRouter(tags=["receipts"])
logger = get_logger(__name__)


class BatchFailureOut(BaseModel):
    index: int | None
    kind: str
    message: str
    retryable: bool
    source: str | None


class BatchResultOut(BaseModel):
    total: int
    processed: int
    summary: str
    expenses: list[ExpenseOut]
    failures: list[BatchFailureOut]


@router.post("/receipts", response_model=BatchResultOut)
async def upload_receipts(
    uploads: list[UploadFile] = File(...),
    services: Services = Depends(get_services),
) -> BatchResultOut:
    batch: list[Upload] = []
    for upload in uploads:
        body = await upload.read()
        log_event(
            logger,
            "upload.received",
            filename=upload.filename or "upload.bin",
            content_type=upload.content_type,
            byte_size=len(body),
        )
        batch.append(
            Upload(
                filename=upload.filename or "upload.bin",
                content_type=upload.content_type,
                body=body,
            )
        )
    # Model calls and DB writes block; keep them off the event loop.
    result = await run_in_threadpool(services.pipeline.process_uploads, batch)
    return BatchResultOut.model_validate(result, from_attributes=True)
