from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from spendlens.core.config import Settings, settings
from spendlens.core.credentials import CredentialStore, SettingsCredentialStore
from spendlens.core.db import SessionFactory, SessionLocal, engine
from spendlens.core.models import Base
from spendlens.modules.currency.service import CurrencyResolver
from spendlens.modules.expenses.service import ExpenseSource
from spendlens.modules.extraction.ai import ModelClient, OpenAIChatClient
from spendlens.modules.extraction.prompts import INSIGHTS_SYSTEM_PROMPT
from spendlens.modules.extraction.service import ReceiptPipeline
from spendlens.modules.insights.scheduler import InsightsScheduler
from spendlens.modules.insights.service import InsightsService, SqlInsightsCache


@dataclass
class Services:
    credentials: CredentialStore
    resolver: CurrencyResolver
    pipeline: ReceiptPipeline
    insights: InsightsService
    scheduler: InsightsScheduler


def build_services(
    s: Settings = settings,
    *,
    session_factory: SessionFactory = SessionLocal,
    credentials: CredentialStore | None = None,
    extraction_client: ModelClient | None = None,
    insights_client: ModelClient | None = None,
) -> Services:
    """Wire the object graph once; everything downstream receives its collaborators."""
    credentials = credentials or SettingsCredentialStore()
    resolver = CurrencyResolver.from_settings(s)

    insights = InsightsService(
        model_client=insights_client
        or OpenAIChatClient.from_settings(
            s,
            credentials=credentials,
            max_tokens=s.insights_max_tokens,
            system_prompt=INSIGHTS_SYSTEM_PROMPT,
        ),
        credentials=credentials,
        max_categories=s.insights_max_categories,
        max_merchants=s.insights_max_merchants,
        max_items=s.insights_max_items,
    )
    scheduler = InsightsScheduler(
        cache=SqlInsightsCache(session_factory),
        analyzer=insights,
        source=ExpenseSource(session_factory),
        min_records=s.insights_min_records,
        refresh_interval=timedelta(days=s.insights_refresh_interval_days),
        growth_records=s.insights_growth_records,
        growth_ratio=s.insights_growth_ratio,
        debounce_seconds=s.insights_debounce_seconds,
    )
    pipeline = ReceiptPipeline(
        model_client=extraction_client
        or OpenAIChatClient.from_settings(
            s, credentials=credentials, max_tokens=s.extraction_max_tokens
        ),
        credentials=credentials,
        resolver=resolver,
        session_factory=session_factory,
        on_records_changed=scheduler.notify_records_changed,
        fallback_confidence=s.fallback_decode_confidence,
        max_amount=s.max_amount,
    )
    return Services(
        credentials=credentials,
        resolver=resolver,
        pipeline=pipeline,
        insights=insights,
        scheduler=scheduler,
    )


def bootstrap() -> None:
    if settings.environment == "dev" and str(settings.database_url).startswith("sqlite"):
        import spendlens.models  # noqa: F401

        Base.metadata.create_all(engine)
