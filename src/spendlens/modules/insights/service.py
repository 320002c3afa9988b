from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select

from spendlens.core.credentials import OPENAI_API_KEY, CredentialStore
from spendlens.core.db import SessionFactory
from spendlens.core.errors import InvalidRecordError, PreconditionError, UnparseableResponseError
from spendlens.core.logging import get_logger, log_event, monotonic_ms
from spendlens.modules.extraction.ai import ModelClient
from spendlens.modules.extraction.prompts import build_insights_prompt
from spendlens.modules.extraction.repair import repair_response
from spendlens.modules.insights.models import InsightsState
from spendlens.modules.insights.schemas import InsightsSnapshot

logger = get_logger(__name__)


def parse_insights_response(raw: str, *, expense_count: int, now: datetime) -> InsightsSnapshot:
    text = repair_response(raw)
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise UnparseableResponseError("Insights response is not valid JSON") from e
    if not isinstance(obj, dict):
        raise UnparseableResponseError("Insights response is not a JSON object")
    obj.pop("generatedAt", None)
    obj.pop("expenseCount", None)
    try:
        return InsightsSnapshot.model_validate(
            {**obj, "generatedAt": now, "expenseCount": expense_count}
        )
    except ValidationError as e:
        raise UnparseableResponseError(
            f"Insights response has an unexpected shape: {str(e).splitlines()[0]}"
        ) from e


class InsightsService:
    """One analysis pass over a record set. Every failure is raised to the caller."""

    def __init__(
        self,
        *,
        model_client: ModelClient,
        credentials: CredentialStore,
        max_categories: int = 10,
        max_merchants: int = 10,
        max_items: int = 15,
        credential_name: str = OPENAI_API_KEY,
    ) -> None:
        self.model_client = model_client
        self.credentials = credentials
        self.max_categories = max_categories
        self.max_merchants = max_merchants
        self.max_items = max_items
        self.credential_name = credential_name

    def analyze(self, records: Sequence[Any], *, now: datetime) -> InsightsSnapshot:
        if not records:
            raise InvalidRecordError("records", "no expenses to analyze")
        if not self.credentials.has(self.credential_name):
            raise PreconditionError("OpenAI API key is not configured")

        start = time.monotonic()
        prompt = build_insights_prompt(
            records,
            today=now.date(),
            max_categories=self.max_categories,
            max_merchants=self.max_merchants,
            max_items=self.max_items,
        )
        raw = self.model_client.call(prompt)
        snapshot = parse_insights_response(raw, expense_count=len(records), now=now)
        log_event(
            logger,
            "insights.analysis.finish",
            expense_count=len(records),
            opportunities=len(snapshot.savings_opportunities),
            duration_ms=monotonic_ms(start),
        )
        return snapshot


@dataclass(frozen=True)
class CachedInsights:
    snapshot: InsightsSnapshot | None = None
    last_run_at: datetime | None = None
    last_record_count: int = 0


class InsightsCache:
    def load(self) -> CachedInsights:
        raise NotImplementedError

    def save(self, snapshot: InsightsSnapshot, *, run_at: datetime, record_count: int) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class InMemoryInsightsCache(InsightsCache):
    def __init__(self) -> None:
        self._state = CachedInsights()
        self._lock = threading.Lock()

    def load(self) -> CachedInsights:
        with self._lock:
            return self._state

    def save(self, snapshot: InsightsSnapshot, *, run_at: datetime, record_count: int) -> None:
        with self._lock:
            self._state = CachedInsights(snapshot, run_at, record_count)

    def clear(self) -> None:
        with self._lock:
            self._state = CachedInsights()


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SqlInsightsCache(InsightsCache):
    def __init__(self, session_factory: SessionFactory, *, name: str = "spending") -> None:
        self.session_factory = session_factory
        self.name = name

    def load(self) -> CachedInsights:
        with self.session_factory() as session:
            row = session.scalar(select(InsightsState).where(InsightsState.name == self.name))
            if row is None:
                return CachedInsights()
            snapshot = None
            if row.snapshot_json:
                try:
                    snapshot = InsightsSnapshot.model_validate(row.snapshot_json)
                except ValidationError:
                    log_event(
                        logger,
                        "insights.cache.corrupt",
                        level=logging.WARNING,
                        name=self.name,
                    )
            return CachedInsights(snapshot, _aware(row.last_run_at), row.last_record_count or 0)

    def save(self, snapshot: InsightsSnapshot, *, run_at: datetime, record_count: int) -> None:
        with self.session_factory() as session:
            row = session.scalar(select(InsightsState).where(InsightsState.name == self.name))
            if row is None:
                row = InsightsState(name=self.name)
            row.snapshot_json = snapshot.model_dump(mode="json", by_alias=True)
            row.last_run_at = run_at
            row.last_record_count = record_count
            session.add(row)
            session.commit()

    def clear(self) -> None:
        with self.session_factory() as session:
            row = session.scalar(select(InsightsState).where(InsightsState.name == self.name))
            if row is not None:
                session.delete(row)
                session.commit()
