from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from spendlens.api.deps import get_services, http_error
from spendlens.bootstrap import Services
from spendlens.core.errors import AnalysisInProgressError, ExtractionError
from spendlens.modules.insights.schemas import InsightsOut, InsightsSnapshot

router = APIRouter(tags=["insights"])


def _insights_out(services: Services) -> InsightsOut:
    scheduler = services.scheduler
    return InsightsOut(
        state=scheduler.state,
        freshness=scheduler.freshness(),
        next_refresh=scheduler.next_refresh_description(),
        snapshot=scheduler.cached_snapshot(),
    )


@router.get("/insights", response_model=InsightsOut)
def get_insights(services: Services = Depends(get_services)) -> InsightsOut:
    return _insights_out(services)


@router.post("/insights/analyze", response_model=InsightsSnapshot)
def analyze_insights(services: Services = Depends(get_services)) -> InsightsSnapshot:
    try:
        return services.scheduler.analyze_now()
    except (AnalysisInProgressError, ExtractionError) as e:
        raise http_error(e) from e


@router.post("/insights/check", response_model=InsightsOut)
def check_insights(services: Services = Depends(get_services)) -> InsightsOut:
    services.scheduler.on_foreground()
    return _insights_out(services)


@router.delete("/insights")
def clear_insights(services: Services = Depends(get_services)) -> Response:
    services.scheduler.clear_cache()
    return Response(status_code=204)
