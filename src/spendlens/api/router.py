from __future__ import annotations

from fastapi import APIRouter

from spendlens.modules.configuration.api import router as configuration_router
from spendlens.modules.expenses.api import router as expenses_router
from spendlens.modules.extraction.api import router as receipts_router
from spendlens.modules.insights.api import router as insights_router

router = APIRouter()

router.include_router(receipts_router, prefix="/api")
router.include_router(expenses_router, prefix="/api")
router.include_router(insights_router, prefix="/api")
router.include_router(configuration_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
